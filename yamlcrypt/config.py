"""
Global configuration and environment handling.

This module is responsible for:
- Defining global constants and defaults
- Reading the few environment variables the tool honours

Nothing in this file should depend on:
- the filesystem
- the configuration file structure
- key resolution
- CLI arguments

If something here changes, the *entire tool* behavior changes.
"""

from __future__ import annotations

import os
from typing import Final, Mapping, Optional, Tuple

# ---------------------------------------------------------------------------
# Tool / format versioning
# ---------------------------------------------------------------------------

TOOL_NAME: Final[str] = "yaml-crypt"
TOOL_VERSION: Final[str] = "0.1.0"

# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

# Every encrypted scalar carries this tag, optionally followed by
# "/<algorithm>". Placeholders used while editing are "/:<index>".
TAG_PREFIX: Final[str] = "!yaml-crypt"
PLACEHOLDER_MARKER: Final[str] = ":"

DOCUMENT_SEPARATOR: Final[str] = "---\n"

# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

KEY_LENGTH: Final[int] = 32

# ---------------------------------------------------------------------------
# File naming
# ---------------------------------------------------------------------------

PLAINTEXT_SUFFIXES: Final[Tuple[str, ...]] = (".yaml", ".yml")
ENCRYPTED_SUFFIX: Final[str] = "-crypt"

# ---------------------------------------------------------------------------
# Configuration file location
# ---------------------------------------------------------------------------

CONFIG_DIR: Final[str] = ".yaml-crypt"
CONFIG_FILENAMES: Final[Tuple[str, ...]] = ("config.yaml", "config.yml")

# ---------------------------------------------------------------------------
# Environment variable names
# ---------------------------------------------------------------------------

ENV_CONFIG_PATH: Final[str] = "YAML_CRYPT_CONFIG"
ENV_EDITOR: Final[str] = "EDITOR"

DEFAULT_EDITOR: Final[str] = "vim"

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_config_path(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Return the configuration file path forced through the environment.

    Returns:
        str or None: the path, or None when the default lookup applies
    """

    environ = os.environ if environ is None else environ
    return environ.get(ENV_CONFIG_PATH) or None


def get_editor(
    configured: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Return the editor command used by ``--edit``.

    The configuration file wins over $EDITOR, which wins over the default.
    """

    environ = os.environ if environ is None else environ
    return configured or environ.get(ENV_EDITOR) or DEFAULT_EDITOR
