from __future__ import annotations

import pytest
import yaml

from yamlcrypt.codec import (
    YamlCrypt,
    decrypt_document,
    encrypt_document,
    generate_key,
)
from yamlcrypt.errors import DecodeError, DocumentError, NoMatchingKeyError, UsageError
from yamlcrypt.tags import Ciphertext, Plaintext, ciphertext_schema
from yamlcrypt.crypto import DEFAULT_REGISTRY

from conftest import BRANCA_TOKEN, FERNET_TOKEN, KEY, OTHER_KEY


def _parse(text):
    """Parse encrypted output without decrypting it."""
    return ciphertext_schema(DEFAULT_REGISTRY).load_all(text)


# ---------------------------------------------------------------------------
# Raw mode
# ---------------------------------------------------------------------------


def test_raw_encryption_golden(registry):
    crypt = YamlCrypt(KEY, registry=registry)
    assert crypt.encrypt("Hello, world!", raw=True) == FERNET_TOKEN
    assert crypt.encrypt("Hello, world!", raw=True, algorithm="branca") == BRANCA_TOKEN


def test_raw_token_is_decrypted_whole():
    assert decrypt_document(FERNET_TOKEN + "\n", KEY) == "Hello, world!"
    assert decrypt_document(BRANCA_TOKEN.encode("ascii"), KEY) == "Hello, world!"
    assert YamlCrypt(KEY).decrypt_all(FERNET_TOKEN) == ["Hello, world!"]


def test_raw_base64_decode_error_is_not_a_key_error():
    with pytest.raises(DecodeError):
        YamlCrypt(KEY).decrypt(FERNET_TOKEN, base64=True)


def test_raw_mode_never_passes_text_through():
    truncated = FERNET_TOKEN[:40]
    with pytest.raises(NoMatchingKeyError):
        YamlCrypt(KEY).decrypt_all(truncated, raw=True)
    with pytest.raises(NoMatchingKeyError):
        decrypt_document(truncated, KEY, raw=True)


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------


def test_encrypt_document_uses_canonical_tag():
    result = encrypt_document("key1: Hello, world!\n", KEY)
    assert result.startswith("key1: !yaml-crypt/fernet:0x80 ")

    [doc] = _parse(result)
    assert isinstance(doc["key1"], Ciphertext)
    assert doc["key1"].algorithm == "fernet:0x80"


def test_encrypt_with_branca():
    result = encrypt_document("key1: Hello, world!\n", KEY, algorithm="branca")
    assert result.startswith("key1: !yaml-crypt/branca:0xBA ")
    assert YamlCrypt(KEY).decrypt(result) == {"key1": "Hello, world!"}


def test_only_strings_are_encrypted():
    text = "name: secret\nport: 8080\nenabled: true\nlist:\n- a\n- 2\n"
    [doc] = _parse(encrypt_document(text, KEY))
    assert isinstance(doc["name"], Ciphertext)
    assert doc["port"] == 8080
    assert doc["enabled"] is True
    assert isinstance(doc["list"][0], Ciphertext)
    assert doc["list"][1] == 2


def test_encrypt_with_path():
    text = "a:\n  b: x\n  c: y\nd: z\n"
    [doc] = _parse(encrypt_document(text, KEY, path="a"))
    assert isinstance(doc["a"]["b"], Ciphertext)
    assert isinstance(doc["a"]["c"], Ciphertext)
    assert doc["d"] == "z"

    [doc] = _parse(encrypt_document(text, KEY, path="a.c"))
    assert doc["a"]["b"] == "x"
    assert isinstance(doc["a"]["c"], Ciphertext)


def test_encrypt_with_missing_path_changes_nothing():
    text = "a:\n  b: x\n"
    [doc] = _parse(encrypt_document(text, KEY, path="nope.b"))
    assert doc == {"a": {"b": "x"}}


def test_already_encrypted_values_are_kept():
    text = f"old: !yaml-crypt {FERNET_TOKEN}\nnew: Hello\n"
    [doc] = _parse(encrypt_document(text, KEY))
    assert doc["old"] == Ciphertext(FERNET_TOKEN, "fernet:0x80")
    assert isinstance(doc["new"], Ciphertext)


def test_multiple_documents():
    crypt = YamlCrypt(KEY)
    result = crypt.encrypt_all("a: 1\n---\nb: x\n")
    assert "---\n" in result
    assert crypt.decrypt_all(result) == [{"a": 1}, {"b": "x"}]


def test_encrypt_needs_a_single_key():
    with pytest.raises(UsageError, match="multiple keys given"):
        YamlCrypt([KEY, OTHER_KEY]).encrypt("a: b\n")
    with pytest.raises(UsageError, match="no keys given"):
        YamlCrypt().encrypt("a: b\n")


def test_explicit_encryption_key():
    crypt = YamlCrypt([KEY, OTHER_KEY], encryption_key=OTHER_KEY)
    result = crypt.encrypt("a: b\n")
    assert YamlCrypt(OTHER_KEY).decrypt(result) == {"a": "b"}
    with pytest.raises(NoMatchingKeyError):
        YamlCrypt(KEY).decrypt(result)


def test_base64_round_trip():
    crypt = YamlCrypt(KEY)
    result = crypt.encrypt("a: Hello, world!\n", base64=True)
    [doc] = _parse(result)
    plain = DEFAULT_REGISTRY.decrypt(doc["a"].algorithm, KEY, doc["a"].text)
    assert plain == "SGVsbG8sIHdvcmxkIQ=="
    assert crypt.decrypt(result, base64=True) == {"a": "Hello, world!"}


# ---------------------------------------------------------------------------
# Decryption
# ---------------------------------------------------------------------------


def test_decrypt_all_tag_forms():
    text = (
        f"key1: !yaml-crypt {FERNET_TOKEN}\n"
        f"key2: !yaml-crypt/fernet {FERNET_TOKEN}\n"
        f"key3: !<!yaml-crypt/branca> {BRANCA_TOKEN}\n"
        f"key4: !yaml-crypt/branca:0xBA {BRANCA_TOKEN}\n"
        "key5: plain\n"
    )
    doc = YamlCrypt(KEY).decrypt(text)
    assert doc == {
        "key1": "Hello, world!",
        "key2": "Hello, world!",
        "key3": "Hello, world!",
        "key4": "Hello, world!",
        "key5": "plain",
    }
    assert isinstance(doc["key1"], Plaintext)
    assert doc["key3"].algorithm == "branca:0xBA"


def test_decrypt_with_mismatched_tag():
    doc = YamlCrypt(KEY).decrypt(f"key: !yaml-crypt/branca {FERNET_TOKEN}\n")
    assert doc == {"key": "Hello, world!"}
    assert doc["key"].algorithm == "fernet:0x80"


def test_decrypt_tries_every_key():
    used = []
    doc = YamlCrypt([OTHER_KEY, KEY]).decrypt(
        f"key: !yaml-crypt {FERNET_TOKEN}\n", callback=lambda key: used.append(key.material)
    )
    assert doc == {"key": "Hello, world!"}
    assert used == [KEY]


def test_each_value_resolves_its_own_key():
    other = YamlCrypt(OTHER_KEY).encrypt("b: second\n")
    text = f"a: !yaml-crypt {FERNET_TOKEN}\n" + other
    assert YamlCrypt([KEY, OTHER_KEY]).decrypt(text) == {"a": "Hello, world!", "b": "second"}


def test_no_matching_key():
    with pytest.raises(NoMatchingKeyError, match="no matching key"):
        YamlCrypt(OTHER_KEY).decrypt(f"key: !yaml-crypt {FERNET_TOKEN}\n")
    with pytest.raises(NoMatchingKeyError):
        decrypt_document(FERNET_TOKEN, OTHER_KEY)


def test_decrypt_without_keys():
    with pytest.raises(UsageError, match="no decryption keys given"):
        YamlCrypt().decrypt(f"key: !yaml-crypt {FERNET_TOKEN}\n")


def test_syntax_error_is_a_document_error():
    with pytest.raises(DocumentError) as excinfo:
        YamlCrypt(KEY).decrypt("key: [unclosed\n")
    assert not isinstance(excinfo.value, NoMatchingKeyError)


def test_foreign_tags_load_as_plain_values():
    text = (
        f"a: !yaml-crypt {FERNET_TOKEN}\n"
        "b: !custom plain\n"
        "c: !custom [1, 2]\n"
        "d: !Ref {x: y}\n"
        "e: !yaml-crypt/rot13 abc\n"
    )
    assert YamlCrypt(KEY).decrypt(text) == {
        "a": "Hello, world!",
        "b": "plain",
        "c": [1, 2],
        "d": {"x": "y"},
        "e": "abc",
    }


def test_foreign_tagged_values_are_encrypted_as_plain_strings():
    result = encrypt_document("a: !custom plain\n", KEY)
    [doc] = _parse(result)
    assert isinstance(doc["a"], Ciphertext)
    assert YamlCrypt(KEY).decrypt(result) == {"a": "plain"}


def test_decrypt_with_path():
    text = f"a:\n  b: !yaml-crypt {FERNET_TOKEN}\nc: !yaml-crypt {FERNET_TOKEN}\n"
    doc = YamlCrypt(KEY).decrypt(text, path="a")
    assert doc["a"] == {"b": "Hello, world!"}
    assert isinstance(doc["c"], Ciphertext)


def test_decrypt_document_serializes_plain_yaml():
    text = f"a: !yaml-crypt {FERNET_TOKEN}\nb: 1\n"
    result = decrypt_document(text, KEY)
    assert "!yaml-crypt" not in result
    assert yaml.safe_load(result) == {"a": "Hello, world!", "b": 1}


def test_decrypt_document_keeps_unopened_values_tagged():
    text = f"a:\n  b: !yaml-crypt {FERNET_TOKEN}\nc: !yaml-crypt {FERNET_TOKEN}\n"
    result = decrypt_document(text, KEY, path="a")
    [doc] = _parse(result)
    assert doc["a"] == {"b": "Hello, world!"}
    assert doc["c"] == Ciphertext(FERNET_TOKEN, "fernet:0x80")


def test_generate_key():
    assert len(generate_key()) == 32
    assert len(generate_key("branca")) == 32
