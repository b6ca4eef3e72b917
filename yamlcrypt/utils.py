"""
Shared utility helpers.

This module contains small, reusable helpers that do not belong
to key handling, document walking, or encryption orchestration.
"""

from __future__ import annotations

import base64
import binascii
from typing import Union

from .errors import DecodeError


# ---------------------------------------------------------------------------
# Text / bytes helpers
# ---------------------------------------------------------------------------


def to_text(data: Union[str, bytes]) -> str:
    """Return ``data`` as text, decoding UTF-8 bytes."""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("utf-8")
    return data


# ---------------------------------------------------------------------------
# Base64 (the --base64 value transform)
# ---------------------------------------------------------------------------


def b64encode_text(text: str) -> str:
    """Encode text as standard Base64."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def b64decode_text(text: str) -> str:
    """
    Decode standard Base64 back to text.

    Raises:
        DecodeError: if the payload is not valid Base64 or not UTF-8
    """
    try:
        return base64.b64decode(text.strip(), validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"could not decode base64 value: {exc}") from exc


# ---------------------------------------------------------------------------
# URL-safe Base64 (fernet tokens)
# ---------------------------------------------------------------------------


def urlsafe_b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii")


def urlsafe_b64decode(text: str) -> bytes:
    """Decode URL-safe Base64, tolerating missing padding."""
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


# ---------------------------------------------------------------------------
# Base62 (branca tokens)
# ---------------------------------------------------------------------------

BASE62_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_BASE62_INDEX = {char: idx for idx, char in enumerate(BASE62_ALPHABET)}


def base62_encode(data: bytes) -> str:
    """Encode bytes as a base62 number, keeping leading zero bytes."""
    leading = len(data) - len(data.lstrip(b"\x00"))
    number = int.from_bytes(data, "big")
    digits = []
    while number:
        number, rem = divmod(number, 62)
        digits.append(BASE62_ALPHABET[rem])
    return "0" * leading + "".join(reversed(digits))


def base62_decode(text: str) -> bytes:
    """
    Decode a base62 string produced by :func:`base62_encode`.

    Raises:
        ValueError: on characters outside the base62 alphabet
    """
    leading = len(text) - len(text.lstrip("0"))
    number = 0
    for char in text:
        try:
            number = number * 62 + _BASE62_INDEX[char]
        except KeyError:
            raise ValueError(f"invalid base62 character: {char!r}") from None
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * leading + body
