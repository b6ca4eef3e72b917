"""
Configuration file loading, validation, and key registration.

This module answers one question:
    "Which keys does the user have?"

Responsibilities:
- Locate and load $HOME/.yaml-crypt/config.yaml (or config.yml)
- Validate the key list
- Append new keys without disturbing the rest of the file

This module does NOT:
- Read keys from the environment, files or descriptors
- Encrypt or decrypt data
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import yaml

from .config import CONFIG_DIR, CONFIG_FILENAMES, KEY_LENGTH, get_config_path
from .errors import ConfigurationError, UsageError
from .keys import Key, read_config_keys

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


@dataclass
class Settings:
    keys: List[Key] = field(default_factory=list)
    editor: Optional[str] = None
    path: Optional[Path] = None

    # ------------------------------------------------------------------
    # Loading API
    # ------------------------------------------------------------------

    @classmethod
    def load(
        cls,
        path: Optional[str | Path] = None,
        home: Optional[str | Path] = None,
    ) -> "Settings":
        """
        Load and validate the configuration file.

        Args:
            path: explicit file; otherwise $YAML_CRYPT_CONFIG, otherwise
                the first existing file in ``<home>/.yaml-crypt``
            home: home directory override

        Raises:
            ConfigurationError: if the file cannot be read or is invalid

        Returns:
            Settings (empty when no file exists)
        """

        path = path or get_config_path()
        if path is None:
            path = find_config_file(home)
            if path is None:
                logger.debug("No configuration file found, using defaults")
                return cls()

        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"configuration file not found: {path}") from None
        except OSError as exc:
            raise ConfigurationError(f"could not read {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc

        settings = cls._from_dict(raw)
        settings.path = path
        logger.debug("Loaded %d key(s) from %s", len(settings.keys), path)
        return settings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @classmethod
    def _from_dict(cls, data: Any) -> "Settings":
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"configuration must be a mapping, not {type(data).__name__}"
            )

        editor = data.get("editor")
        if editor is not None and not isinstance(editor, str):
            raise ConfigurationError(
                f"editor must be a string, not {type(editor).__name__}"
            )

        return cls(keys=read_config_keys(data.get("keys")), editor=editor)


def config_home(home: Optional[str | Path] = None) -> Path:
    return Path(home or Path.home()) / CONFIG_DIR


def find_config_file(home: Optional[str | Path] = None) -> Optional[Path]:
    """Return the first existing configuration file, if any."""

    directory = config_home(home)
    for filename in CONFIG_FILENAMES:
        candidate = directory / filename
        if candidate.exists():
            return candidate
    return None


def write_key(name: str, key: str, home: Optional[str | Path] = None) -> Path:
    """
    Append a named key to the configuration file.

    The file is extended as text, not re-serialized, so comments and
    formatting survive. Missing directories/files are created private.

    Raises:
        UsageError: if the name exists or the key has the wrong length
    """

    key = key.strip()
    if not key:
        raise UsageError("empty key given!")
    if len(key) != KEY_LENGTH:
        raise UsageError(f"key should be {KEY_LENGTH} bytes, but got {len(key)}")

    path = find_config_file(home)
    if path is not None:
        existing = Settings.load(path)
        if any(k.name == name for k in existing.keys):
            raise UsageError(f"key already exists: {name}")
        content = path.read_bytes().decode("utf-8")
    else:
        directory = config_home(home)
        directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        path = directory / CONFIG_FILENAMES[0]
        content = ""

    lf = "\r\n" if "\r\n" in content else "\n"
    if content and not content.endswith(lf):
        content += lf
    if "keys:" not in content.split(lf):
        content += f"keys:{lf}"
    content += f"  - name: '{name}'{lf}    key: '{key}'{lf}"

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
        fh.write(content)

    logger.debug("Wrote key %s to %s", name, path)
    return path
