"""
Exception types raised by yaml-crypt.

Library code never prints. It raises one of the classes below and leaves
presentation to the command-line layer.
"""

from __future__ import annotations


class YamlCryptError(Exception):
    """Base class for all yaml-crypt errors."""


class UsageError(YamlCryptError):
    """The caller asked for something that cannot work as given."""


class PathError(UsageError):
    """A YAML path could not be parsed."""


class DocumentError(UsageError):
    """The input is not a valid YAML document."""


class NoMatchingKeyError(UsageError):
    """None of the candidate keys opens the given data."""


class ConfigurationError(YamlCryptError):
    """The key configuration itself is malformed."""


class DecryptionError(YamlCryptError):
    """A single key/algorithm pair does not open a token."""


class DecodeError(YamlCryptError):
    """Decryption succeeded, but the decrypted payload could not be decoded."""
