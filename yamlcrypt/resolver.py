"""
Multi-key decryption.

Given candidate algorithms and keys, try each (algorithm, key) pair in
order until one opens the data. Algorithms form the outer loop and keys
the inner one, so every pair is tried before giving up; key order only
expresses preference.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, Optional, Sequence, TypeVar

from .errors import DecryptionError, NoMatchingKeyError, UsageError
from .keys import Key

logger = logging.getLogger(__name__)

T = TypeVar("T")
A = TypeVar("A")


@dataclass(frozen=True)
class Attempt(Generic[A, T]):
    key: Key
    algorithm: A
    result: Optional[T] = None
    error: Optional[DecryptionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Resolution(Generic[A, T]):
    key: Key
    algorithm: A
    result: T


def _attempts(
    algorithms: Sequence[A],
    keys: Sequence[Key],
    decrypt: Callable[[A, Key], T],
) -> Iterator[Attempt]:
    for algorithm in algorithms:
        for key in keys:
            try:
                result = decrypt(algorithm, key)
            except DecryptionError as exc:
                yield Attempt(key, algorithm, error=exc)
            else:
                yield Attempt(key, algorithm, result=result)


def try_decrypt(
    algorithms: Sequence[A],
    keys: Sequence[Key],
    decrypt: Callable[[A, Key], T],
) -> Resolution:
    """
    Return the first (key, algorithm, result) for which ``decrypt`` succeeds.

    Only DecryptionError marks a failed attempt; anything else propagates.

    Raises:
        UsageError: if no keys are given
        NoMatchingKeyError: if every pair fails
    """

    if not keys:
        raise UsageError("cannot decrypt data, no decryption keys given!")

    for attempt in _attempts(algorithms, keys, decrypt):
        if attempt.ok:
            logger.debug(
                "Decrypted using key %s (%s)", attempt.key.source, attempt.algorithm
            )
            return Resolution(attempt.key, attempt.algorithm, attempt.result)
        logger.debug(
            "Key %s failed (%s): %s", attempt.key.source, attempt.algorithm, attempt.error
        )

    raise NoMatchingKeyError("no matching key to decrypt the given data!")
