from __future__ import annotations

import pytest

from yamlcrypt.errors import DecryptionError, NoMatchingKeyError, UsageError
from yamlcrypt.keys import Key
from yamlcrypt.resolver import try_decrypt

from conftest import KEY, OTHER_KEY


FIRST = Key(KEY, source="first")
SECOND = Key(OTHER_KEY, source="second")


def test_first_success_wins():
    calls = []

    def decrypt(algorithm, key):
        calls.append((algorithm, key.source))
        if key is not SECOND:
            raise DecryptionError("nope")
        return f"{algorithm}-ok"

    resolution = try_decrypt(["one", "two"], [FIRST, SECOND], decrypt)

    assert resolution.key is SECOND
    assert resolution.algorithm == "one"
    assert resolution.result == "one-ok"
    assert calls == [("one", "first"), ("one", "second")]


def test_algorithms_are_the_outer_loop():
    calls = []

    def decrypt(algorithm, key):
        calls.append((algorithm, key.source))
        if algorithm != "two" or key is not FIRST:
            raise DecryptionError("nope")
        return "ok"

    try_decrypt(["one", "two"], [FIRST, SECOND], decrypt)
    assert calls == [("one", "first"), ("one", "second"), ("two", "first")]


def test_no_keys():
    with pytest.raises(UsageError, match="no decryption keys given"):
        try_decrypt(["one"], [], lambda algorithm, key: "ok")


def test_no_matching_key():
    def decrypt(algorithm, key):
        raise DecryptionError("nope")

    with pytest.raises(NoMatchingKeyError, match="no matching key") as excinfo:
        try_decrypt(["one", "two"], [FIRST, SECOND], decrypt)
    assert isinstance(excinfo.value, UsageError)


def test_other_errors_propagate():
    def decrypt(algorithm, key):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        try_decrypt(["one"], [FIRST, SECOND], decrypt)
