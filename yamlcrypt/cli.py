"""
Command-line interface for yaml-crypt.

This module wires the library to files, streams and an editor:
- encrypt / decrypt files, directories, or stdin
- edit encrypted files in place
- generate keys and store them in the configuration file

Everything that prints lives here.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import shlex
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import IO, Any, Dict, List, Optional

from .codec import Options, YamlCrypt
from .config import TOOL_NAME, TOOL_VERSION, get_editor
from .errors import ConfigurationError, UsageError, YamlCryptError
from .file_scanner import FileScanner, is_encrypted_file, is_plaintext_file, output_path
from .keys import Key, KeySource, resolve_keys, select_encryption_key
from .settings import Settings, write_key
from .utils import to_text
from .walker import query_values

EXIT_USAGE = 5
EXIT_CONFIGURATION = 6
EXIT_INTERRUPTED = 130


# ---------------------------------------------------------------------------
# Color output helpers
# ---------------------------------------------------------------------------


class Colors:
    """ANSI color codes for terminal output."""
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    RESET = "\033[0m"


def colored(text: str, color: str, stream: Optional[IO] = None) -> str:
    """Return colored text when writing to a terminal."""
    stream = stream or sys.stderr
    if not getattr(stream, "isatty", lambda: False)():
        return text
    return f"{color}{text}{Colors.RESET}"


def print_error(msg: str, stream: Optional[IO] = None) -> None:
    """Print error message to stderr."""
    stream = stream or sys.stderr
    print(colored(f"{TOOL_NAME}: error: {msg}", Colors.RED, stream), file=stream)


def print_warning(msg: str, stream: Optional[IO] = None) -> None:
    """Print warning message to stderr."""
    stream = stream or sys.stderr
    print(colored(f"{TOOL_NAME}: warning: {msg}", Colors.YELLOW, stream), file=stream)


def print_info(msg: str, stream: Optional[IO] = None) -> None:
    """Print info message to stderr."""
    stream = stream or sys.stderr
    print(colored(msg, Colors.CYAN, stream), file=stream)


# ---------------------------------------------------------------------------
# Editor
# ---------------------------------------------------------------------------


def run_editor(editor: str, path: Path) -> None:
    """Open ``path`` in ``editor`` and wait for it to exit."""
    subprocess.run(shlex.split(editor) + [str(path)], check=False)


# ---------------------------------------------------------------------------
# CLI context
# ---------------------------------------------------------------------------


class CLIContext:
    """Shared context for CLI commands."""

    def __init__(
        self,
        args: argparse.Namespace,
        settings: Settings,
        stdin: Optional[IO] = None,
        stdout: Optional[IO] = None,
        stderr: Optional[IO] = None,
        home: Optional[str] = None,
    ):
        self.args = args
        self.settings = settings
        self.stdin = stdin
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.home = home

        # Lazy-loaded
        self._keys: Optional[List[Key]] = None
        self._encryption_key: Optional[Key] = None
        self._crypt: Optional[YamlCrypt] = None

    @property
    def key_source(self) -> KeySource:
        return KeySource(self.settings.keys)

    @property
    def keys(self) -> List[Key]:
        """Resolve decryption keys lazily."""
        if self._keys is None:
            self._keys = resolve_keys(self.args.k, self.key_source)
        return self._keys

    @property
    def encryption_key(self) -> Optional[Key]:
        if self._encryption_key is None:
            explicit = self.key_source.resolve(self.args.K) if self.args.K else None
            self._encryption_key = select_encryption_key(self.keys, explicit)
        return self._encryption_key

    @property
    def crypt(self) -> YamlCrypt:
        if self._crypt is None:
            self._crypt = YamlCrypt(self.keys, self.encryption_key)
        return self._crypt

    @property
    def algorithm(self) -> Optional[str]:
        if not self.args.algorithm:
            return None
        try:
            return self.crypt.registry.resolve(self.args.algorithm).identifier
        except ConfigurationError:
            raise UsageError(f"unknown encryption algorithm: {self.args.algorithm}") from None

    def options(self, **overrides: Any) -> Dict[str, Any]:
        """Codec options from the command line, as keyword arguments."""
        values: Dict[str, Any] = dict(
            algorithm=self.algorithm,
            path=self.args.path,
            base64=self.args.base64,
            raw=self.args.raw,
            callback=self.log_key,
        )
        values.update(overrides)
        return values

    def read_input(self) -> str:
        stream = self.stdin if self.stdin is not None else sys.stdin.buffer
        return to_text(stream.read())

    def write(self, text: str) -> None:
        self.stdout.write(text)

    def log_key(self, key: Key) -> None:
        """Report the key that opened the data when debugging."""
        if self.args.debug:
            print(f"successfully decrypted using key: {key.source}", file=self.stderr)


# ---------------------------------------------------------------------------
# Encryption helpers
# ---------------------------------------------------------------------------


def encrypt_text(ctx: CLIContext, text: str) -> str:
    opts = ctx.options(callback=None)
    result = ctx.crypt.encrypt_all(text, **opts)
    # raw tokens carry no line break of their own
    return result + "\n" if opts["raw"] else result


def decrypt_text(ctx: CLIContext, text: str) -> str:
    opts = ctx.options()
    if opts["raw"] or ctx.crypt.is_raw(text):
        return ctx.crypt.decrypt_raw(text, Options(**opts))
    return ctx.crypt.dump_all(ctx.crypt.decrypt_all(text, **opts))


# ---------------------------------------------------------------------------
# Command implementations
# ---------------------------------------------------------------------------


def cmd_generate_key(ctx: CLIContext) -> int:
    """
    Print a new random key for the selected algorithm.
    """
    ctx.write(ctx.crypt.registry.generate_key(ctx.algorithm) + "\n")
    return 0


def cmd_write_key(ctx: CLIContext) -> int:
    """
    Read a key from stdin and store it in the configuration file.
    """
    path = write_key(ctx.args.write_key, ctx.read_input(), home=ctx.home)
    print_info(f"key {ctx.args.write_key} written to {path}", ctx.stderr)
    return 0


def cmd_stream(ctx: CLIContext) -> int:
    """
    Encrypt or decrypt stdin to stdout.
    """
    args = ctx.args
    if args.encrypt:
        encrypting = True
    elif args.decrypt:
        encrypting = False
    else:
        raise UsageError("no input files, but no operation (--encrypt/--decrypt) given!")

    text = ctx.read_input()

    if encrypting:
        ctx.write(encrypt_text(ctx, text))
        return 0

    if not args.query:
        ctx.write(decrypt_text(ctx, text))
        return 0

    found: List[Any] = []
    for document in ctx.crypt.decrypt_all(text, **ctx.options(path=None)):
        found.extend(query_values(document, args.query))
    lines = [value if isinstance(value, str) else json.dumps(value) for value in found]
    ctx.write("\n".join(lines) + "\n")
    return 0


def cmd_files(ctx: CLIContext) -> int:
    """
    Encrypt or decrypt the given files and directories.
    """
    failed = 0
    for name in ctx.args.file:
        path = Path(name)
        if path.is_dir():
            if not (ctx.args.dir or ctx.args.recursive):
                raise UsageError(
                    f"directories will be skipped unless --dir or --recursive given: {path}"
                )
            encrypting = True if ctx.args.encrypt else False if ctx.args.decrypt else None
            scanner = FileScanner(path, recursive=ctx.args.recursive)
            targets = list(scanner.scan(encrypting))
            if not targets:
                print_warning(f"no YAML files found in {path}", ctx.stderr)
        else:
            targets = [path]

        for target in targets:
            try:
                process_file(ctx, target)
            except (YamlCryptError, OSError) as e:
                if not ctx.args.continue_:
                    raise
                print_error(f"{target}: {e}", ctx.stderr)
                failed += 1

    return 1 if failed else 0


def process_file(ctx: CLIContext, path: Path) -> None:
    """
    Encrypt a .yaml/.yml file or decrypt a .yaml-crypt/.yml-crypt file.
    """
    args = ctx.args
    if is_plaintext_file(path):
        encrypting = True
    elif is_encrypted_file(path):
        encrypting = False
    else:
        raise UsageError(f"unknown file extension: {path}")

    if encrypting and args.decrypt:
        raise UsageError(f"decrypted file, but --decrypt given: {path}")
    if not encrypting and args.encrypt:
        raise UsageError(f"encrypted file, but --encrypt given: {path}")

    try:
        content = path.read_bytes()
    except FileNotFoundError:
        raise UsageError(f"file does not exist: {path}") from None

    target = output_path(path)
    if target.exists() and not args.force:
        raise UsageError(f"output file already exists: {target}")

    text = to_text(content)
    result = encrypt_text(ctx, text) if encrypting else decrypt_text(ctx, text)

    fd, tmp_name = tempfile.mkstemp(suffix=".tmp", dir=target.resolve().parent)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        tmp_path.write_text(result, encoding="utf-8")
        tmp_path.replace(target)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    if not args.keep:
        path.unlink()


def cmd_edit(ctx: CLIContext) -> int:
    """
    Decrypt each file into an editor and re-encrypt what was changed.
    """
    for name in ctx.args.file:
        edit_file(ctx, Path(name))
    return 0


def edit_file(ctx: CLIContext, path: Path) -> None:
    """
    The decrypted text only ever exists in a private temporary file next to
    ``path``; it is removed on every exit path.
    """
    if not is_encrypted_file(path):
        raise UsageError(f"unexpected extension, expecting .yaml-crypt or .yml-crypt: {path}")

    try:
        content = path.read_bytes()
    except FileNotFoundError:
        raise UsageError(f"file does not exist: {path}") from None

    editor = get_editor(ctx.settings.editor)
    fd, tmp_name = tempfile.mkstemp(suffix=".yaml", dir=path.resolve().parent)
    os.close(fd)
    tmp_path = Path(tmp_name)

    def mutate(text: str) -> bytes:
        tmp_path.write_text(text, encoding="utf-8")
        run_editor(editor, tmp_path)
        return tmp_path.read_bytes()

    try:
        options = ctx.options(path=None)
        transformed = ctx.crypt.transform(content, mutate, **options)
        tmp_path.write_text(transformed, encoding="utf-8")
        tmp_path.replace(path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


KEY_SOURCES_HELP = """\
key sources:
  Keys can be read from the configuration file ("c:" or "config:"),
  environment variables ("e:" or "env:"), file descriptors ("fd:")
  and files ("f:" or "file:"). Without a prefix, a key is read from a file.
  Example: -k c:my-key -k e:MY_KEY -k fd:0 -k f:my.key

decryption keys:
  Without -k, every key from $HOME/.yaml-crypt/config.yaml is tried, in
  order, until the data can be decrypted.

encryption keys:
  Without -K, the only available key is used. When editing, the key
  that decrypted the file encrypts it again.
"""


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog=TOOL_NAME,
        description="Encrypt and decrypt values in YAML documents",
        epilog=KEY_SOURCES_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("-v", "--version", action="version", version=TOOL_VERSION)
    parser.add_argument("--debug", action="store_true", help="Show debugging output")
    parser.add_argument("-e", "--encrypt", action="store_true", help="Encrypt data")
    parser.add_argument("-d", "--decrypt", action="store_true", help="Decrypt data")
    parser.add_argument(
        "--generate-key",
        action="store_true",
        help="Generate a new random key. Use -a to specify the algorithm",
    )
    parser.add_argument(
        "--write-key",
        metavar="<name>",
        help="Read a key from stdin and write it to the configuration file under the given name",
    )
    parser.add_argument(
        "-k",
        action="append",
        metavar="<key>",
        help="Use the given key to decrypt data. Can be given multiple times",
    )
    parser.add_argument("-K", metavar="<key>", help="Use the given key to encrypt data")
    parser.add_argument(
        "-a",
        "--algorithm",
        metavar="<algorithm>",
        help='The encryption algorithm to use: "fernet" (default) or "branca"',
    )
    parser.add_argument(
        "-E",
        "--edit",
        action="store_true",
        help="Open an editor for the given files, transparently decrypting and encrypting the content",
    )
    parser.add_argument(
        "-B",
        "--base64",
        action="store_true",
        help="Base64-encode values before encrypting and decode them after decrypting",
    )
    parser.add_argument(
        "--path",
        metavar="<yaml-path>",
        help='Only process values below the given YAML path, e.g. "obj.key"',
    )
    parser.add_argument(
        "--query",
        metavar="<yaml-query>",
        help="Output the value for the given YAML path",
    )
    parser.add_argument(
        "--raw",
        action="store_true",
        help="Encrypt/decrypt raw messages instead of YAML documents",
    )
    parser.add_argument(
        "-D", "--dir", action="store_true", help="Process all files in the given directories"
    )
    parser.add_argument(
        "-R",
        "--recursive",
        action="store_true",
        help="Process all files in the given directories and their subdirectories",
    )
    parser.add_argument(
        "--continue",
        dest="continue_",
        action="store_true",
        help="Continue processing when one or more files fail",
    )
    parser.add_argument("--keep", action="store_true", help="Keep the original files")
    parser.add_argument("-f", "--force", action="store_true", help="Overwrite existing files")
    parser.add_argument("file", nargs="*", metavar="<file>", help="Input file(s) to process")

    return parser


_EXCLUSIVE = [
    ("encrypt", "decrypt"),
    ("raw", "path"),
    ("raw", "query"),
    ("edit", "path"),
    ("edit", "query"),
    ("edit", "keep"),
    ("edit", "encrypt"),
    ("edit", "decrypt"),
    ("dir", "recursive"),
    ("generate_key", "write_key"),
    ("generate_key", "encrypt"),
    ("generate_key", "decrypt"),
    ("write_key", "encrypt"),
    ("write_key", "decrypt"),
]


def _option(name: str) -> str:
    return "--" + name.replace("_", "-")


def validate_args(args: argparse.Namespace, settings: Settings) -> None:
    """
    Reject option combinations that make no sense.

    Raises:
        UsageError
    """
    for first, second in _EXCLUSIVE:
        if getattr(args, first) and getattr(args, second):
            raise UsageError(f"cannot combine {_option(first)} and {_option(second)}!")

    if args.edit and not args.file:
        raise UsageError("option --edit used, but no files given!")
    if not (args.generate_key or args.write_key or args.k or args.K or settings.keys):
        raise UsageError("no keys given and no default keys configured!")
    if args.keep and not args.file:
        raise UsageError("option --keep used, but no files given!")
    if args.query and args.file:
        raise UsageError("option --query only valid when reading from stdin!")
    if args.query and not args.decrypt:
        raise UsageError("option --query must be combined with --decrypt!")
    if args.generate_key and args.file:
        raise UsageError("option --generate-key used, but files given!")
    if args.write_key and args.file:
        raise UsageError("option --write-key used, but files given!")


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(
    argv: Optional[List[str]] = None,
    stdin: Optional[IO] = None,
    stdout: Optional[IO] = None,
    stderr: Optional[IO] = None,
    home: Optional[str] = None,
) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    stderr = stderr or sys.stderr

    if args.debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(name)s: %(message)s",
            stream=stderr,
        )

    try:
        settings = Settings.load(home=home)
        validate_args(args, settings)

        ctx = CLIContext(args, settings, stdin=stdin, stdout=stdout, stderr=stderr, home=home)

        if args.generate_key:
            return cmd_generate_key(ctx)
        if args.write_key:
            return cmd_write_key(ctx)
        if args.edit:
            return cmd_edit(ctx)
        if args.file:
            return cmd_files(ctx)
        return cmd_stream(ctx)

    except ConfigurationError as e:
        print_error(f"could not parse configuration: {e}", stderr)
        return EXIT_CONFIGURATION
    except YamlCryptError as e:
        print_error(str(e), stderr)
        return EXIT_USAGE
    except KeyboardInterrupt:
        print_error("Interrupted", stderr)
        return EXIT_INTERRUPTED
    except OSError as e:
        print_error(f"I/O error: {e}", stderr)
        if args.debug:
            import traceback
            traceback.print_exc(file=stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
