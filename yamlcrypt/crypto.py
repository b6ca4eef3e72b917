"""
Symmetric algorithms and the registry that dispatches to them.

Each algorithm turns a 32-byte key and a text message into a
self-describing token and back. The registry is a plain ordered
dispatch table: the first registered algorithm is the default, and
short aliases ("fernet") resolve to the registered version
("fernet:0x80").

This module knows nothing about YAML.
"""

from __future__ import annotations

import re
import struct
import time
from typing import Callable, Iterator, List, Optional, Sequence, Union

from Crypto.Cipher import AES, ChaCha20_Poly1305
from Crypto.Hash import HMAC, SHA256
from Crypto.Random import get_random_bytes
from Crypto.Util.Padding import pad, unpad

from .config import KEY_LENGTH
from .errors import ConfigurationError, DecryptionError, UsageError
from .utils import (
    base62_decode,
    base62_encode,
    to_text,
    urlsafe_b64decode,
    urlsafe_b64encode,
)

Clock = Callable[[], float]
RandomBytes = Callable[[int], bytes]


class Algorithm:
    """One encrypt/decrypt scheme and its wire-format version."""

    name: str = ""
    version: int = 0

    def __init__(
        self,
        clock: Optional[Clock] = None,
        random_bytes: Optional[RandomBytes] = None,
    ):
        self.clock = clock or time.time
        self.random_bytes = random_bytes or get_random_bytes

    @property
    def identifier(self) -> str:
        return f"{self.name}:0x{self.version:02X}"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.identifier}>"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_key(self) -> str:
        """Return a random key of KEY_LENGTH characters."""
        return urlsafe_b64encode(self.random_bytes(KEY_LENGTH * 3 // 4))

    def encrypt(self, key: str, plaintext: str) -> str:
        return self._encrypt(self._encryption_key(key), plaintext.encode("utf-8"))

    def decrypt(self, key: str, token: str) -> str:
        if token is None:
            raise DecryptionError("message is null")
        if not isinstance(token, str):
            raise DecryptionError(
                f"invalid type for message: {type(token).__name__}"
            )
        if not token.strip():
            raise DecryptionError("message is empty")

        plaintext = self._decrypt(self._decryption_key(key), token.strip())
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("decrypted message is not UTF-8") from exc

    def is_token(self, candidate: str) -> bool:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _encrypt(self, key: bytes, plaintext: bytes) -> str:
        raise NotImplementedError

    def _decrypt(self, key: bytes, token: str) -> bytes:
        raise NotImplementedError

    @staticmethod
    def _encryption_key(key: str) -> bytes:
        raw = key.encode("utf-8")
        if len(raw) != KEY_LENGTH:
            raise UsageError(f"key should be {KEY_LENGTH} bytes, but got {len(raw)}")
        return raw

    @staticmethod
    def _decryption_key(key: str) -> bytes:
        raw = key.encode("utf-8")
        if len(raw) != KEY_LENGTH:
            raise DecryptionError(f"invalid key length: {len(raw)}")
        return raw


class Fernet(Algorithm):
    """
    Fernet tokens (AES-128-CBC + HMAC-SHA256).

    Layout: 0x80 | timestamp (8) | IV (16) | ciphertext | HMAC (32),
    URL-safe Base64 encoded. No TTL is enforced.
    """

    name = "fernet"
    version = 0x80

    IV_SIZE = 16
    MAC_SIZE = 32
    HEADER_SIZE = 1 + 8 + IV_SIZE
    MIN_TOKEN_SIZE = HEADER_SIZE + AES.block_size + MAC_SIZE

    _TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+={0,2}$")

    def _encrypt(self, key: bytes, plaintext: bytes) -> str:
        signing_key, encryption_key = key[:16], key[16:]
        iv = self.random_bytes(self.IV_SIZE)

        cipher = AES.new(encryption_key, AES.MODE_CBC, iv=iv)
        ciphertext = cipher.encrypt(pad(plaintext, AES.block_size))

        basic = struct.pack(">BQ", self.version, int(self.clock())) + iv + ciphertext
        mac = HMAC.new(signing_key, basic, digestmod=SHA256).digest()
        return urlsafe_b64encode(basic + mac)

    def _decrypt(self, key: bytes, token: str) -> bytes:
        signing_key, encryption_key = key[:16], key[16:]
        try:
            data = urlsafe_b64decode(token)
        except ValueError as exc:
            raise DecryptionError("invalid fernet token encoding") from exc

        if len(data) < self.MIN_TOKEN_SIZE or data[0] != self.version:
            raise DecryptionError("invalid fernet token")

        basic, mac = data[: -self.MAC_SIZE], data[-self.MAC_SIZE :]
        try:
            HMAC.new(signing_key, basic, digestmod=SHA256).verify(mac)
        except ValueError as exc:
            raise DecryptionError("fernet signature mismatch") from exc

        iv = basic[9 : self.HEADER_SIZE]
        ciphertext = basic[self.HEADER_SIZE :]
        if len(ciphertext) % AES.block_size:
            raise DecryptionError("invalid fernet ciphertext length")

        cipher = AES.new(encryption_key, AES.MODE_CBC, iv=iv)
        try:
            return unpad(cipher.decrypt(ciphertext), AES.block_size)
        except ValueError as exc:
            raise DecryptionError("invalid fernet padding") from exc

    def is_token(self, candidate: str) -> bool:
        if not self._TOKEN_RE.match(candidate):
            return False
        try:
            data = urlsafe_b64decode(candidate)
        except ValueError:
            return False
        return len(data) >= self.MIN_TOKEN_SIZE and data[0] == self.version


class Branca(Algorithm):
    """
    Branca tokens (XChaCha20-Poly1305).

    Layout: 0xBA | timestamp (4) | nonce (24) | ciphertext | tag (16),
    base62 encoded. The 29-byte header is authenticated as associated data.
    """

    name = "branca"
    version = 0xBA

    NONCE_SIZE = 24
    TAG_SIZE = 16
    HEADER_SIZE = 1 + 4 + NONCE_SIZE
    MIN_TOKEN_SIZE = HEADER_SIZE + TAG_SIZE

    _TOKEN_RE = re.compile(r"^[0-9A-Za-z]+$")

    def _encrypt(self, key: bytes, plaintext: bytes) -> str:
        nonce = self.random_bytes(self.NONCE_SIZE)
        header = struct.pack(">BI", self.version, int(self.clock())) + nonce

        cipher = ChaCha20_Poly1305.new(key=key, nonce=nonce)
        cipher.update(header)
        ciphertext, tag = cipher.encrypt_and_digest(plaintext)
        return base62_encode(header + ciphertext + tag)

    def _decrypt(self, key: bytes, token: str) -> bytes:
        try:
            data = base62_decode(token)
        except ValueError as exc:
            raise DecryptionError("invalid branca token encoding") from exc

        if len(data) < self.MIN_TOKEN_SIZE or data[0] != self.version:
            raise DecryptionError("invalid branca token")

        header = data[: self.HEADER_SIZE]
        nonce = header[5:]
        ciphertext, tag = data[self.HEADER_SIZE : -self.TAG_SIZE], data[-self.TAG_SIZE :]

        cipher = ChaCha20_Poly1305.new(key=key, nonce=nonce)
        cipher.update(header)
        try:
            return cipher.decrypt_and_verify(ciphertext, tag)
        except ValueError as exc:
            raise DecryptionError("branca authentication failed") from exc

    def is_token(self, candidate: str) -> bool:
        if not self._TOKEN_RE.match(candidate):
            return False
        try:
            data = base62_decode(candidate)
        except ValueError:
            return False
        return len(data) >= self.MIN_TOKEN_SIZE and data[0] == self.version


class AlgorithmRegistry:
    """Ordered table of algorithms; the first one is the default."""

    def __init__(self, algorithms: Sequence[Algorithm]):
        if not algorithms:
            raise ConfigurationError("at least one algorithm is required")
        self._algorithms: List[Algorithm] = list(algorithms)

    def __iter__(self) -> Iterator[Algorithm]:
        return iter(self._algorithms)

    @property
    def default(self) -> Algorithm:
        return self._algorithms[0]

    @property
    def identifiers(self) -> List[str]:
        return [algorithm.identifier for algorithm in self._algorithms]

    def resolve(self, name: Optional[str] = None) -> Algorithm:
        """
        Return the algorithm for an identifier or short alias.

        Raises:
            ConfigurationError: if no registered algorithm matches
        """

        if name is None:
            return self.default
        for algorithm in self._algorithms:
            if name in (algorithm.identifier, algorithm.name):
                return algorithm
        raise ConfigurationError(f"unknown algorithm: {name}")

    def generate_key(self, algorithm: Optional[str] = None) -> str:
        return self.resolve(algorithm).generate_key()

    def encrypt(self, algorithm: Optional[str], key: str, plaintext: str) -> str:
        return self.resolve(algorithm).encrypt(key, plaintext)

    def decrypt(self, algorithm: Optional[str], key: str, token: str) -> str:
        return self.resolve(algorithm).decrypt(key, token)

    def detect(self, candidate: Union[str, bytes]) -> Optional[Algorithm]:
        """Return the algorithm whose token format ``candidate`` has, if any."""
        try:
            text = to_text(candidate).strip()
        except UnicodeDecodeError:
            return None
        if not text:
            return None
        for algorithm in self._algorithms:
            if algorithm.is_token(text):
                return algorithm
        return None

    def is_ciphertext(self, candidate: Union[str, bytes]) -> bool:
        return self.detect(candidate) is not None


DEFAULT_REGISTRY = AlgorithmRegistry([Fernet(), Branca()])
