"""
Tagged scalars: mapping between values and ``!yaml-crypt`` YAML scalars.

A TagSchema is an explicit registry of

    tag  -> decode(text) -> value       (used while parsing)
    type -> encode(value) -> (tag, text) (used while serializing)

from which throw-away PyYAML SafeLoader/SafeDumper subclasses are built
for a single call. Nothing is registered on PyYAML's global classes.

Recognized tags for an algorithm "fernet:0x80":

    !yaml-crypt/fernet:0x80   canonical, always used for output
    !yaml-crypt/fernet        short alias
    !yaml-crypt               default algorithm only
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import yaml
from yaml.representer import SafeRepresenter

from .config import DOCUMENT_SEPARATOR, PLACEHOLDER_MARKER, TAG_PREFIX
from .crypto import AlgorithmRegistry
from .errors import DocumentError
from .keys import Key
from .resolver import try_decrypt
from .utils import b64decode_text, b64encode_text, to_text


Decode = Callable[[str], Any]
Encode = Callable[[Any], Tuple[str, str]]
KeyCallback = Callable[[Key], None]


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


class Plaintext(str):
    """
    A decrypted (or to-be-encrypted) string.

    Compares equal to the plain string. ``ciphertext`` holds the token it
    was decrypted from, so an unchanged value can be written back as-is.
    """

    ciphertext: Optional[str]
    algorithm: Optional[str]

    def __new__(
        cls,
        text: str,
        ciphertext: Optional[str] = None,
        algorithm: Optional[str] = None,
    ):
        obj = super().__new__(cls, text)
        obj.ciphertext = ciphertext
        obj.algorithm = algorithm
        return obj

    @property
    def text(self) -> str:
        return str.__str__(self)

    def __repr__(self) -> str:
        return f"Plaintext({str.__repr__(self)}, algorithm={self.algorithm!r})"


@dataclass(frozen=True)
class Ciphertext:
    """An encrypted value that is written back verbatim."""

    text: str
    algorithm: Optional[str] = None


@dataclass(frozen=True)
class KnownText:
    """Placeholder for a decrypted value while a document is being edited."""

    index: int
    plaintext: Plaintext
    algorithm: Optional[str] = None


# ---------------------------------------------------------------------------
# Tag names
# ---------------------------------------------------------------------------


def tag_for(algorithm: str) -> str:
    return f"{TAG_PREFIX}/{algorithm}"


def placeholder_tag(index: int) -> str:
    return f"{TAG_PREFIX}/{PLACEHOLDER_MARKER}{index}"


def algorithm_tags(registry: AlgorithmRegistry) -> Dict[str, str]:
    """Return every recognized tag mapped to its canonical algorithm id."""

    tags: Dict[str, str] = {}
    for algorithm in registry:
        tags[tag_for(algorithm.identifier)] = algorithm.identifier
        tags[tag_for(algorithm.name)] = algorithm.identifier
    tags[TAG_PREFIX] = registry.default.identifier
    return tags


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


def _constructor(decode: Decode):
    def construct(loader: yaml.SafeLoader, node: yaml.Node) -> Any:
        return decode(loader.construct_scalar(node))

    return construct


def _representer(encode: Encode):
    def represent(dumper: yaml.SafeDumper, data: Any) -> yaml.Node:
        tag, text = encode(data)
        return dumper.represent_scalar(tag, text)

    return represent


def _construct_untagged(loader: yaml.SafeLoader, suffix: str, node: yaml.Node) -> Any:
    # foreign tags are dropped, the value loads as if it had none
    if isinstance(node, yaml.ScalarNode):
        return loader.construct_scalar(node)
    if isinstance(node, yaml.SequenceNode):
        return loader.construct_sequence(node, deep=True)
    return loader.construct_mapping(node, deep=True)


class TagSchema:
    def __init__(self) -> None:
        self._decoders: Dict[str, Decode] = {}
        self._encoders: Dict[type, Encode] = {}
        self._plain_types: List[type] = []

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_tag(self, tag: str, decode: Decode) -> None:
        self._decoders[tag] = decode

    def add_type(self, data_type: type, encode: Encode) -> None:
        self._encoders[data_type] = encode

    def add_plain_type(self, data_type: type) -> None:
        """Serialize ``data_type`` (a str subclass) as an ordinary string."""
        self._plain_types.append(data_type)

    @property
    def tags(self) -> List[str]:
        return list(self._decoders)

    # ------------------------------------------------------------------
    # PyYAML classes
    # ------------------------------------------------------------------

    def loader(self) -> type:
        loader = type("TaggedLoader", (yaml.SafeLoader,), {})
        for tag, decode in self._decoders.items():
            loader.add_constructor(tag, _constructor(decode))
        loader.add_multi_constructor("", _construct_untagged)
        return loader

    def dumper(self) -> type:
        dumper = type("TaggedDumper", (yaml.SafeDumper,), {})
        for data_type in self._plain_types:
            dumper.add_representer(data_type, SafeRepresenter.represent_str)
        for data_type, encode in self._encoders.items():
            dumper.add_representer(data_type, _representer(encode))
        return dumper

    # ------------------------------------------------------------------
    # Load / dump
    # ------------------------------------------------------------------

    def load_all(self, text) -> List[Any]:
        """
        Parse every document in ``text``.

        Raises:
            DocumentError: if the text is not valid YAML
        """

        try:
            return list(yaml.load_all(to_text(text), Loader=self.loader()))
        except yaml.YAMLError as exc:
            raise DocumentError(f"could not parse document: {exc}") from exc

    def dump(self, document: Any) -> str:
        return yaml.dump(
            document,
            Dumper=self.dumper(),
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )

    def dump_all(self, documents: Sequence[Any]) -> str:
        return DOCUMENT_SEPARATOR.join(self.dump(document) for document in documents)


# ---------------------------------------------------------------------------
# Schemas used by the codec
# ---------------------------------------------------------------------------


def ciphertext_schema(registry: AlgorithmRegistry) -> TagSchema:
    """Tagged values stay encrypted and are written back unchanged."""

    schema = TagSchema()
    for tag, identifier in algorithm_tags(registry).items():
        schema.add_tag(tag, lambda text, identifier=identifier: Ciphertext(text, identifier))
    schema.add_type(Ciphertext, lambda value: (tag_for(value.algorithm), value.text))
    return schema


def plain_schema(registry: AlgorithmRegistry) -> TagSchema:
    """Decrypted values are written as ordinary strings."""

    schema = ciphertext_schema(registry)
    schema.add_plain_type(Plaintext)
    return schema


def decrypting_schema(
    registry: AlgorithmRegistry,
    keys: Sequence[Key],
    base64: bool = False,
    callback: Optional[KeyCallback] = None,
) -> TagSchema:
    """
    Every tagged value is decrypted while parsing.

    Each value is resolved on its own, see :func:`open_token`.
    """

    schema = plain_schema(registry)
    for tag, identifier in algorithm_tags(registry).items():
        schema.add_tag(
            tag,
            lambda text, identifier=identifier: open_token(
                registry, keys, text, identifier, base64=base64, callback=callback
            ),
        )
    return schema


def open_token(
    registry: AlgorithmRegistry,
    keys: Sequence[Key],
    token: str,
    algorithm: Optional[str] = None,
    base64: bool = False,
    callback: Optional[KeyCallback] = None,
) -> Plaintext:
    """
    Decrypt one tagged value with the first key that opens it.

    The algorithm named by the tag is tried first, the other registered
    algorithms after it. The result remembers its token.
    """

    first = registry.resolve(algorithm)
    algorithms = [first] + [a for a in registry if a is not first]
    resolution = try_decrypt(
        algorithms, keys, lambda candidate, key: candidate.decrypt(key.material, token)
    )
    if callback is not None:
        callback(resolution.key)

    result = resolution.result
    if base64:
        result = b64decode_text(result)
    return Plaintext(result, ciphertext=token, algorithm=resolution.algorithm.identifier)


def encrypting_schema(
    registry: AlgorithmRegistry,
    key: Key,
    algorithm: Optional[str] = None,
    base64: bool = False,
    reuse: bool = True,
) -> TagSchema:
    """
    Plaintext values are written as freshly encrypted tokens.

    A value that still carries the token it was decrypted from is written
    back byte-identical, unless ``reuse`` is off or the target algorithm
    differs.
    """

    def encode(value: Plaintext) -> Tuple[str, str]:
        target = registry.resolve(algorithm or value.algorithm)
        if reuse and value.ciphertext and value.algorithm == target.identifier:
            return tag_for(target.identifier), value.ciphertext

        text = b64encode_text(value.text) if base64 else value.text
        return tag_for(target.identifier), target.encrypt(key.material, text)

    schema = ciphertext_schema(registry)
    schema.add_type(Plaintext, encode)
    return schema
