"""
Edit round trip: decrypt, let something else change the plaintext,
re-encrypt only what changed.

The encryption algorithms are randomized, so re-encrypting every value
would rewrite every token on each edit. Instead each decrypted value is
exposed as a numbered placeholder scalar (``!yaml-crypt/:0 value``).
When the edited text is parsed again, a placeholder whose text is
byte-identical to what was exposed gets its original token back;
everything else is encrypted fresh.

The external editor, temp files and the like are the caller's business.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Set

from .errors import DecryptionError, NoMatchingKeyError, UsageError
from .keys import Key
from .resolver import Resolution, try_decrypt
from .tags import (
    KnownText,
    Plaintext,
    TagSchema,
    algorithm_tags,
    ciphertext_schema,
    decrypting_schema,
    encrypting_schema,
    placeholder_tag,
    plain_schema,
)
from .utils import b64decode_text, b64encode_text, to_text
from .walker import walk_values

if TYPE_CHECKING:
    from .codec import Options, YamlCrypt

logger = logging.getLogger(__name__)

Mutator = Callable[[str], Any]

# Each tagged value names its own algorithm, so whole-document attempts
# only iterate over keys.
EVERY_ALGORITHM = "*"


class EditState(enum.Enum):
    LOCATING_KEY = "locating-key"
    EXPOSING_PLAINTEXT = "exposing-plaintext"
    EXTERNAL_MUTATION = "external-mutation"
    RECONCILING = "reconciling"
    RE_ENCRYPTING = "re-encrypting"
    DONE = "done"


class Transformer:
    def __init__(self, crypt: "YamlCrypt", options: "Options"):
        self.crypt = crypt
        self.registry = crypt.registry
        self.options = options

        self.state: Optional[EditState] = None
        self.decryption_key: Optional[Key] = None
        self.encryption_key: Optional[Key] = None
        self.known: Dict[int, KnownText] = {}
        self._consumed: Set[int] = set()

    @property
    def reencrypt(self) -> bool:
        """True when the target key differs from the key that opened the data."""
        return (
            self.encryption_key is not None
            and self.decryption_key is not None
            and self.encryption_key.material != self.decryption_key.material
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, text, mutate: Mutator) -> str:
        """
        Run the whole round trip and return the re-encrypted text.

        ``mutate`` is only called once a key opening every value is known.
        """

        text = to_text(text)
        try:
            if self.options.raw or self.crypt.is_raw(text):
                return self._run_raw(text, mutate)
            return self._run_documents(text, mutate)
        finally:
            self.known.clear()
            self._consumed.clear()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def _run_documents(self, text: str, mutate: Mutator) -> str:
        documents = self._locate_key(text)
        exposed = self._expose(documents)
        mutated = self._mutate(exposed, mutate)
        reconciled = self._reconcile(mutated)
        return self._reencrypt(reconciled)

    def _locate_key(self, text: str) -> List[Any]:
        self._enter(EditState.LOCATING_KEY)

        # syntax errors must not look like a key mismatch
        ciphertext_schema(self.registry).load_all(text)

        def load(_algorithm: str, key: Key) -> List[Any]:
            schema = decrypting_schema(self.registry, [key], base64=self.options.base64)
            try:
                return schema.load_all(text)
            except NoMatchingKeyError as exc:
                raise DecryptionError(str(exc)) from exc

        resolution = try_decrypt([EVERY_ALGORITHM], self.crypt.keys, load)
        self._use_key(resolution)
        return resolution.result

    def _expose(self, documents: List[Any]) -> str:
        self._enter(EditState.EXPOSING_PLAINTEXT)

        def hide(value: Plaintext) -> KnownText:
            known = KnownText(len(self.known), value, value.algorithm)
            self.known[known.index] = known
            return known

        documents = [
            walk_values(document, None, lambda value: isinstance(value, Plaintext), hide)
            for document in documents
        ]

        schema = plain_schema(self.registry)
        schema.add_type(
            KnownText, lambda known: (placeholder_tag(known.index), known.plaintext.text)
        )
        logger.debug("Exposing %d value(s)", len(self.known))
        return schema.dump_all(documents)

    def _reconcile(self, text: str) -> List[Any]:
        self._enter(EditState.RECONCILING)

        schema = TagSchema()
        for tag, identifier in algorithm_tags(self.registry).items():
            schema.add_tag(tag, lambda value, identifier=identifier: Plaintext(value, algorithm=identifier))
        for index in self.known:
            schema.add_tag(placeholder_tag(index), lambda value, index=index: self._restore(index, value))
        return schema.load_all(text)

    def _restore(self, index: int, text: str) -> Plaintext:
        known = self.known[index]
        original = known.plaintext

        if index in self._consumed or text != original.text:
            logger.debug("Value %d changed", index)
            return Plaintext(text, algorithm=known.algorithm)

        self._consumed.add(index)
        if self.reencrypt:
            return Plaintext(text, algorithm=known.algorithm)
        return original

    def _reencrypt(self, documents: List[Any]) -> str:
        self._enter(EditState.RE_ENCRYPTING)

        schema = encrypting_schema(
            self.registry,
            self.encryption_key,
            algorithm=self.options.algorithm,
            base64=self.options.base64,
            reuse=not self.reencrypt,
        )
        result = schema.dump_all(documents)
        self._enter(EditState.DONE)
        return result

    # ------------------------------------------------------------------
    # Raw tokens
    # ------------------------------------------------------------------

    def _run_raw(self, text: str, mutate: Mutator) -> str:
        self._enter(EditState.LOCATING_KEY)

        token = text.strip()
        resolution = try_decrypt(
            list(self.registry),
            self.crypt.keys,
            lambda algorithm, key: algorithm.decrypt(key.material, token),
        )
        self._use_key(resolution)

        self._enter(EditState.EXPOSING_PLAINTEXT)
        plaintext = resolution.result
        if self.options.base64:
            plaintext = b64decode_text(plaintext)

        mutated = self._mutate(plaintext, mutate)

        self._enter(EditState.RECONCILING)
        algorithm = resolution.algorithm
        if self.options.algorithm is not None:
            algorithm = self.registry.resolve(self.options.algorithm)

        if mutated == plaintext and not self.reencrypt and algorithm is resolution.algorithm:
            self._enter(EditState.DONE)
            return text

        self._enter(EditState.RE_ENCRYPTING)
        message = b64encode_text(mutated) if self.options.base64 else mutated
        result = algorithm.encrypt(self.encryption_key.material, message)
        self._enter(EditState.DONE)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _use_key(self, resolution: Resolution) -> None:
        self.decryption_key = resolution.key
        self.encryption_key = self.crypt.encryption_key or resolution.key
        logger.debug(
            "Editing with decryption key %s, encryption key %s",
            self.decryption_key.source,
            self.encryption_key.source,
        )
        if self.options.callback is not None:
            self.options.callback(resolution.key)

    def _mutate(self, exposed: str, mutate: Mutator) -> str:
        self._enter(EditState.EXTERNAL_MUTATION)
        result = mutate(exposed)
        if result is None:
            raise UsageError("edit callback returned no content!")
        return to_text(result)

    def _enter(self, state: EditState) -> None:
        logger.debug("Edit state: %s -> %s", self.state and self.state.value, state.value)
        self.state = state
