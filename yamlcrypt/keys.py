"""
Key model and key sources.

Given raw key descriptors, this module produces an ordered list of
normalized Key records and decides which of them encrypts.

Keys DO NOT encrypt anything. They only carry material and provenance.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence

from .errors import ConfigurationError, UsageError

logger = logging.getLogger(__name__)

_WINDOWS_PATH = re.compile(r"^[A-Za-z]:\\")


@dataclass(frozen=True)
class Key:
    material: str
    source: str = "inline"
    name: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.material, str):
            raise UsageError(f"invalid key: {type(self.material).__name__}")
        if not self.material:
            raise UsageError("empty key!")

    def __repr__(self) -> str:
        # never leak material into tracebacks or logs
        return f"Key(source={self.source!r}, name={self.name!r})"

    @classmethod
    def coerce(cls, value: Any) -> "Key":
        """
        Build a Key from a Key, a raw string, or a ``{key, name}`` mapping.
        """

        if isinstance(value, Key):
            return value
        if isinstance(value, Mapping):
            name = value.get("name") or ""
            source = f"inline:{name}" if name else "inline"
            return cls(material=value.get("key"), source=source, name=name)
        return cls(material=value)


def coerce_keys(values: Any) -> List[Key]:
    """Normalize None, a single key, or a sequence of keys to a list."""
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        values = [values]
    return [Key.coerce(value) for value in values]


# ---------------------------------------------------------------------------
# Configuration keys
# ---------------------------------------------------------------------------


def read_config_keys(entries: Any) -> List[Key]:
    """
    Validate the ``keys`` list of a configuration file.

    Raises:
        ConfigurationError: on malformed entries or non-unique names
    """

    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ConfigurationError(
            f"keys must be a list, not {type(entries).__name__}"
        )

    keys: List[Key] = []
    seen = set()
    for entry in entries:
        if not isinstance(entry, Mapping) or not entry.get("key"):
            raise ConfigurationError("attribute key missing for key entry!")

        raw = entry["key"]
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        if not isinstance(raw, str):
            raise ConfigurationError(
                f"key entry is not a string: {type(raw).__name__}"
            )

        name = entry.get("name") or ""
        if not isinstance(name, str):
            raise ConfigurationError(
                f"key name is not a string: {type(name).__name__}"
            )
        if name and name in seen:
            raise ConfigurationError(f"non-unique key name: {name}")
        seen.add(name)

        material = raw.strip()
        if not material:
            raise ConfigurationError(f"empty key in configuration: {name or '?'}")
        keys.append(Key(material=material, source=f"config:{name}", name=name))

    return keys


# ---------------------------------------------------------------------------
# Key sources
# ---------------------------------------------------------------------------


def _read_fd(fd: int) -> str:
    chunks = []
    while True:
        chunk = os.read(fd, 1024)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks).decode("utf-8")


class KeySource:
    """
    Resolve key descriptors such as ``c:name``, ``env:VAR``, ``fd:3``
    or ``path/to/file``.

    A descriptor without a recognised prefix is read as a file path.
    """

    def __init__(
        self,
        config_keys: Sequence[Key] = (),
        environ: Optional[Mapping[str, str]] = None,
        read_fd: Callable[[int], str] = _read_fd,
    ):
        self.config_keys = list(config_keys)
        self.environ = os.environ if environ is None else environ
        self.read_fd = read_fd

    def resolve(self, descriptor: str) -> Key:
        prefix, arg = self._split(descriptor)

        if prefix in ("c", "config"):
            return self._from_config(arg)
        if prefix in ("e", "env"):
            return self._from_env(arg)
        if prefix == "fd":
            return self._from_fd(arg)
        if prefix in ("f", "file"):
            return self._from_file(arg)

        raise UsageError(f"unknown key argument: {descriptor}")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _split(descriptor: str):
        if ":" in descriptor and not _WINDOWS_PATH.match(descriptor):
            prefix, _, arg = descriptor.partition(":")
            return prefix, arg
        return "f", descriptor

    def _from_config(self, name: str) -> Key:
        for key in self.config_keys:
            if key.name == name:
                return key
        raise UsageError(f"key not found in configuration file: {name}")

    def _from_env(self, name: str) -> Key:
        value = (self.environ.get(name) or "").strip()
        if not value:
            raise UsageError(f"no such environment variable: {name}")
        return Key(material=value, source=f"env:{name}")

    def _from_fd(self, arg: str) -> Key:
        try:
            fd = int(arg)
        except ValueError:
            raise UsageError(f"not a file descriptor: {arg}") from None
        material = self.read_fd(fd).strip()
        if not material:
            raise UsageError(f"empty key read from file descriptor: {fd}")
        return Key(material=material, source=f"fd:{fd}")

    def _from_file(self, path: str) -> Key:
        try:
            material = Path(path).read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            raise UsageError(f"key file does not exist: {path}") from None
        if not material:
            raise UsageError(f"key file is empty: {path}")
        return Key(material=material, source=f"file:{path}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def resolve_keys(
    descriptors: Optional[Iterable[str]],
    source: KeySource,
) -> List[Key]:
    """
    Resolve decryption key descriptors, in order.

    With no descriptors every configured key is a candidate, in file order.
    """

    descriptors = list(descriptors or [])
    if not descriptors:
        return list(source.config_keys)

    keys = [source.resolve(descriptor) for descriptor in descriptors]
    logger.debug("Resolved %d key(s): %s", len(keys), [k.source for k in keys])
    return keys


def select_encryption_key(
    keys: Sequence[Key],
    explicit: Optional[Key] = None,
) -> Optional[Key]:
    """Return the explicit key, else the only candidate, else None."""

    if explicit is not None:
        return explicit
    if len(keys) == 1:
        return keys[0]
    return None


def require_encryption_key(
    keys: Sequence[Key],
    encryption_key: Optional[Key],
) -> Key:
    """
    Raises:
        UsageError: if no single encryption key can be chosen
    """

    if encryption_key is not None:
        return encryption_key
    if keys:
        raise UsageError(
            "encrypting, but multiple keys given! "
            "Use -K to explicitly specify an encryption key."
        )
    raise UsageError("encrypting, but no keys given!")
