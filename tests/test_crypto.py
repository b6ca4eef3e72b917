from __future__ import annotations

import pytest

from yamlcrypt.crypto import DEFAULT_REGISTRY, Branca, Fernet
from yamlcrypt.errors import ConfigurationError, DecodeError, DecryptionError, UsageError
from yamlcrypt.utils import base62_decode, base62_encode, b64decode_text

from conftest import BRANCA_TOKEN, FERNET_TOKEN, KEY, OTHER_KEY


def test_fernet_golden_token(registry):
    assert registry.encrypt("fernet", KEY, "Hello, world!") == FERNET_TOKEN


def test_branca_golden_token(registry):
    assert registry.encrypt("branca", KEY, "Hello, world!") == BRANCA_TOKEN


def test_decrypt_golden_tokens():
    assert DEFAULT_REGISTRY.decrypt("fernet", KEY, FERNET_TOKEN) == "Hello, world!"
    assert DEFAULT_REGISTRY.decrypt("branca", KEY, BRANCA_TOKEN) == "Hello, world!"


def test_random_tokens_decrypt():
    for algorithm in DEFAULT_REGISTRY:
        token = algorithm.encrypt(KEY, "äöü secret")
        assert algorithm.decrypt(KEY, token) == "äöü secret"


def test_identifiers_and_aliases():
    assert DEFAULT_REGISTRY.identifiers == ["fernet:0x80", "branca:0xBA"]
    assert DEFAULT_REGISTRY.resolve() is DEFAULT_REGISTRY.default
    assert DEFAULT_REGISTRY.resolve("fernet") is DEFAULT_REGISTRY.resolve("fernet:0x80")
    assert isinstance(DEFAULT_REGISTRY.resolve("branca"), Branca)
    assert isinstance(DEFAULT_REGISTRY.default, Fernet)


def test_unknown_algorithm():
    with pytest.raises(ConfigurationError, match="unknown algorithm: x"):
        DEFAULT_REGISTRY.decrypt("x", KEY, "")


@pytest.mark.parametrize("algorithm", ["fernet", "branca"])
def test_generate_key(algorithm):
    key = DEFAULT_REGISTRY.generate_key(algorithm)
    assert len(key) == 32
    token = DEFAULT_REGISTRY.encrypt(algorithm, key, "x")
    assert DEFAULT_REGISTRY.decrypt(algorithm, key, token) == "x"


def test_decrypt_rejects_bad_payloads():
    with pytest.raises(DecryptionError, match="message is null"):
        DEFAULT_REGISTRY.decrypt("fernet", KEY, None)
    with pytest.raises(DecryptionError, match="invalid type for message"):
        DEFAULT_REGISTRY.decrypt("fernet", KEY, {})
    with pytest.raises(DecryptionError, match="message is empty"):
        DEFAULT_REGISTRY.decrypt("fernet", KEY, "  ")


def test_wrong_key_fails():
    with pytest.raises(DecryptionError):
        DEFAULT_REGISTRY.decrypt("fernet", OTHER_KEY, FERNET_TOKEN)
    with pytest.raises(DecryptionError):
        DEFAULT_REGISTRY.decrypt("branca", OTHER_KEY, BRANCA_TOKEN)


def test_wrong_algorithm_fails():
    with pytest.raises(DecryptionError):
        DEFAULT_REGISTRY.decrypt("branca", KEY, FERNET_TOKEN)


def test_tampered_token_fails():
    tampered = FERNET_TOKEN[:40] + ("A" if FERNET_TOKEN[40] != "A" else "B") + FERNET_TOKEN[41:]
    with pytest.raises(DecryptionError):
        DEFAULT_REGISTRY.decrypt("fernet", KEY, tampered)


def test_short_key_is_usage_error():
    with pytest.raises(UsageError, match="key should be 32 bytes"):
        DEFAULT_REGISTRY.encrypt("fernet", "short", "x")
    with pytest.raises(DecryptionError):
        DEFAULT_REGISTRY.decrypt("fernet", "short", FERNET_TOKEN)


def test_is_ciphertext():
    assert DEFAULT_REGISTRY.is_ciphertext(FERNET_TOKEN)
    assert DEFAULT_REGISTRY.is_ciphertext(FERNET_TOKEN + "\n")
    assert DEFAULT_REGISTRY.is_ciphertext(BRANCA_TOKEN.encode("ascii"))
    assert DEFAULT_REGISTRY.detect(BRANCA_TOKEN).name == "branca"

    assert not DEFAULT_REGISTRY.is_ciphertext("X")
    assert not DEFAULT_REGISTRY.is_ciphertext("XXX")
    assert not DEFAULT_REGISTRY.is_ciphertext("key: value\n")
    assert not DEFAULT_REGISTRY.is_ciphertext("")


def test_base62_keeps_leading_zero_bytes():
    data = b"\x00\x00\xba\x01\x02"
    assert base62_decode(base62_encode(data)) == data
    with pytest.raises(ValueError):
        base62_decode("not-base62")


def test_b64decode_text_rejects_garbage():
    with pytest.raises(DecodeError):
        b64decode_text("Hello, world!")
