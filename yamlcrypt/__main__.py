"""
Main entry point for running yaml-crypt as a module.

Usage:
    python -m yamlcrypt [options] [<file> ...]
"""

from .cli import main
import sys

if __name__ == "__main__":
    sys.exit(main())
