"""
Filesystem scanning and file naming.

This module is responsible for:
- walking directories given on the command line
- telling plaintext YAML files from encrypted ones
- naming the output file of an encryption or decryption

This module does NOT:
- encrypt or decrypt data
- modify files
- load configuration files
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional

from .config import ENCRYPTED_SUFFIX, PLAINTEXT_SUFFIXES
from .errors import UsageError

logger = logging.getLogger(__name__)


def is_plaintext_file(path: str | Path) -> bool:
    return str(path).endswith(PLAINTEXT_SUFFIXES)


def is_encrypted_file(path: str | Path) -> bool:
    return str(path).endswith(tuple(s + ENCRYPTED_SUFFIX for s in PLAINTEXT_SUFFIXES))


def output_path(path: str | Path) -> Path:
    """
    Return the file an encryption or decryption of ``path`` writes.

    Raises:
        UsageError: for files that are neither plaintext nor encrypted YAML
    """

    name = str(path)
    if is_plaintext_file(name):
        return Path(name + ENCRYPTED_SUFFIX)
    if is_encrypted_file(name):
        return Path(name[: -len(ENCRYPTED_SUFFIX)])
    raise UsageError(f"unknown file extension: {path}")


class FileScanner:
    def __init__(self, root: str | Path, recursive: bool = False):
        self.root = Path(root)
        self.recursive = recursive

    def scan(self, encrypting: Optional[bool] = None) -> Iterator[Path]:
        """
        Walk the directory and yield YAML files in sorted order.

        Args:
            encrypting: True to yield only plaintext files, False to yield
                only encrypted ones, None to yield both

        Yields:
            Path
        """

        logger.debug("Scanning %s (recursive=%s)", self.root, self.recursive)

        pattern = "**/*" if self.recursive else "*"
        for path in sorted(self.root.glob(pattern)):
            if not path.is_file():
                continue

            if encrypting is True and not is_plaintext_file(path):
                continue
            if encrypting is False and not is_encrypted_file(path):
                continue
            if not is_plaintext_file(path) and not is_encrypted_file(path):
                continue

            yield path
