"""
yaml-crypt

Encrypt selected values of YAML documents in place, so that secrets can
live in version control next to the configuration that uses them.
"""

__version__ = "0.1.0"

from .codec import (
    Options,
    YamlCrypt,
    decrypt_document,
    edit_document,
    encrypt_document,
    generate_key,
    yamlcrypt,
)
from .crypto import DEFAULT_REGISTRY, AlgorithmRegistry, Branca, Fernet
from .errors import (
    ConfigurationError,
    DecodeError,
    DecryptionError,
    DocumentError,
    NoMatchingKeyError,
    PathError,
    UsageError,
    YamlCryptError,
)
from .keys import Key, KeySource
from .settings import Settings
from .tags import Ciphertext, Plaintext

__all__ = [
    "Options",
    "YamlCrypt",
    "decrypt_document",
    "edit_document",
    "encrypt_document",
    "generate_key",
    "yamlcrypt",
    "DEFAULT_REGISTRY",
    "AlgorithmRegistry",
    "Branca",
    "Fernet",
    "ConfigurationError",
    "DecodeError",
    "DecryptionError",
    "DocumentError",
    "NoMatchingKeyError",
    "PathError",
    "UsageError",
    "YamlCryptError",
    "Key",
    "KeySource",
    "Settings",
    "Ciphertext",
    "Plaintext",
]
