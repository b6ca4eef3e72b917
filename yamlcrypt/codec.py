"""
Selective encryption of whole YAML documents.

This module orchestrates all other components:
- the walker picks which string scalars to encrypt
- the tag schemas turn values into tagged scalars and back
- the resolver finds the key that opens each value

It is intentionally dumb about files, editors and command lines.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from .crypto import DEFAULT_REGISTRY, AlgorithmRegistry
from .keys import Key, coerce_keys, require_encryption_key, select_encryption_key
from .resolver import try_decrypt
from .tags import (
    Ciphertext,
    KeyCallback,
    Plaintext,
    ciphertext_schema,
    decrypting_schema,
    encrypting_schema,
    open_token,
    plain_schema,
)
from .transformer import Transformer
from .utils import b64decode_text, b64encode_text, to_text
from .walker import walk_string_values, walk_values

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Options:
    algorithm: Optional[str] = None
    path: Optional[str] = None
    base64: bool = False
    raw: bool = False
    callback: Optional[KeyCallback] = None


class YamlCrypt:
    """
    Encrypt, decrypt and edit YAML documents with a fixed set of keys.

    Args:
        keys: decryption keys, tried in order
        encryption_key: key used for encryption; defaults to the only
            decryption key when exactly one is given
        registry: algorithms available to this instance
    """

    def __init__(
        self,
        keys: Any = None,
        encryption_key: Any = None,
        registry: AlgorithmRegistry = DEFAULT_REGISTRY,
    ):
        self.registry = registry
        self.keys: List[Key] = coerce_keys(keys)
        explicit = Key.coerce(encryption_key) if encryption_key is not None else None
        if not self.keys and explicit is not None:
            self.keys = [explicit]
        self.encryption_key: Optional[Key] = select_encryption_key(self.keys, explicit)

    # ------------------------------------------------------------------
    # Encryption
    # ------------------------------------------------------------------

    def encrypt(self, text, **opts) -> str:
        """Encrypt a single YAML document (or a raw message)."""
        return self.encrypt_all(text, **opts)

    def encrypt_all(self, text, **opts) -> str:
        """
        Encrypt every string value in every document of ``text``.

        Values that are already tagged are kept as they are.

        Raises:
            UsageError: if no single encryption key is available
        """

        options = Options(**opts)
        key = require_encryption_key(self.keys, self.encryption_key)
        algorithm = self.registry.resolve(options.algorithm)
        text = to_text(text)

        if options.raw:
            message = b64encode_text(text) if options.base64 else text
            return algorithm.encrypt(key.material, message)

        documents = [
            walk_string_values(document, options.path, Plaintext)
            for document in ciphertext_schema(self.registry).load_all(text)
        ]

        logger.debug(
            "Encrypting %d document(s) with %s using key %s",
            len(documents),
            algorithm.identifier,
            key.source,
        )
        schema = encrypting_schema(
            self.registry, key, algorithm=algorithm.identifier, base64=options.base64
        )
        return schema.dump_all(documents)

    # ------------------------------------------------------------------
    # Decryption
    # ------------------------------------------------------------------

    def decrypt(self, text, **opts) -> Any:
        """Decrypt a single document; returns the parsed object."""
        documents = self.decrypt_all(text, **opts)
        return documents[0] if documents else None

    def decrypt_all(self, text, **opts) -> List[Any]:
        """
        Decrypt every document in ``text``.

        In raw mode, or when the payload is one raw token, it is decrypted as a
        whole and returned as a single string document. With a path, only
        tagged values below that path are decrypted; the others stay Ciphertext.
        """

        options = Options(**opts)
        text = to_text(text)

        if options.raw or self.is_raw(text):
            return [self.decrypt_raw(text, options)]

        if not options.path:
            schema = decrypting_schema(
                self.registry, self.keys, base64=options.base64, callback=options.callback
            )
            return schema.load_all(text)

        def decrypt_value(value: Ciphertext) -> Plaintext:
            return open_token(
                self.registry,
                self.keys,
                value.text,
                value.algorithm,
                base64=options.base64,
                callback=options.callback,
            )

        return [
            walk_values(
                document,
                options.path,
                lambda value: isinstance(value, Ciphertext),
                decrypt_value,
            )
            for document in ciphertext_schema(self.registry).load_all(text)
        ]

    def decrypt_raw(self, text: str, options: Optional[Options] = None) -> str:
        """Decrypt one raw token, trying every algorithm with every key."""

        options = options or Options()
        token = to_text(text).strip()
        resolution = try_decrypt(
            list(self.registry),
            self.keys,
            lambda algorithm, key: algorithm.decrypt(key.material, token),
        )
        if options.callback is not None:
            options.callback(resolution.key)

        result = resolution.result
        return b64decode_text(result) if options.base64 else result

    def is_raw(self, text) -> bool:
        return self.registry.is_ciphertext(text)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def dump_all(self, documents: Sequence[Any]) -> str:
        """Serialize decrypted documents as plain YAML."""
        return plain_schema(self.registry).dump_all(documents)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def transform(self, text, mutate: Callable[..., Any], **opts) -> str:
        """
        Decrypt ``text``, hand the plaintext to ``mutate`` and re-encrypt
        the result. Unchanged values keep their original ciphertext.
        """

        return Transformer(self, Options(**opts)).run(text, mutate)


# ---------------------------------------------------------------------------
# Module API
# ---------------------------------------------------------------------------


def yamlcrypt(keys: Any = None, encryption_key: Any = None, **kwargs) -> YamlCrypt:
    return YamlCrypt(keys=keys, encryption_key=encryption_key, **kwargs)


def generate_key(
    algorithm: Optional[str] = None,
    registry: AlgorithmRegistry = DEFAULT_REGISTRY,
) -> str:
    return registry.generate_key(algorithm)


def encrypt_document(text, keys: Any, encryption_key: Any = None, **opts) -> str:
    return YamlCrypt(keys, encryption_key).encrypt_all(text, **opts)


def decrypt_document(text, keys: Any, **opts) -> str:
    """
    Decrypt ``text`` and return it serialized: plain YAML for documents,
    the message itself for a raw token.
    """

    crypt = YamlCrypt(keys)
    options = Options(**opts)
    if options.raw or crypt.is_raw(text):
        return crypt.decrypt_raw(text, options)
    return crypt.dump_all(crypt.decrypt_all(text, **opts))


def edit_document(
    text,
    keys: Any,
    mutate: Callable[..., Any],
    encryption_key: Any = None,
    **opts,
) -> str:
    return YamlCrypt(keys, encryption_key).transform(text, mutate, **opts)
