"""
Document traversal and YAML path addressing.

A YAML path selects one node inside a parsed document:

    a.b          mapping key "a", then "b"
    "a.b".c      quoted segment containing a literal dot
    a[b]         bracket segment, also used for sequence indices

This module does NOT:
- parse or serialize YAML
- encrypt or decrypt values
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable, List, Optional, Tuple

from .errors import PathError

logger = logging.getLogger(__name__)

Check = Callable[[Any], bool]
Transform = Callable[[Any], Any]


class _State(enum.Enum):
    SEGMENT = "segment"
    QUOTED = "quoted"
    BRACKET = "bracket"


_QUOTES = ("'", '"')


def split_path(path: str) -> List[str]:
    """
    Split a YAML path into its segments.

    Quotes open a segment only at the start of the path or right after a
    dot. Empty segments are dropped.

    Raises:
        PathError: if a quote or bracket is never closed
    """

    parts: List[str] = []
    current: List[str] = []
    state = _State.SEGMENT
    opening = ""
    quote_allowed = True

    def flush() -> None:
        if current:
            parts.append("".join(current))
            current.clear()

    for char in path:
        if state is _State.SEGMENT:
            if char == ".":
                flush()
                quote_allowed = True
            elif char == "[":
                flush()
                state, opening = _State.BRACKET, char
            elif char in _QUOTES and quote_allowed and not current:
                state, opening = _State.QUOTED, char
            else:
                current.append(char)
                quote_allowed = False
        elif state is _State.QUOTED:
            if char == opening:
                flush()
                state, quote_allowed = _State.SEGMENT, False
            else:
                current.append(char)
        else:
            if char == "]":
                flush()
                state, quote_allowed = _State.SEGMENT, False
            else:
                current.append(char)

    if state is not _State.SEGMENT:
        raise PathError(f"unmatched separator: {opening}")

    flush()
    return parts


def _child(container: Any, part: str) -> Tuple[bool, Any]:
    """Return (found, key) for one path segment below ``container``."""

    if isinstance(container, dict):
        if part in container:
            return True, part
        try:
            index = int(part)
        except ValueError:
            return False, None
        return (index in container), index

    if isinstance(container, list):
        try:
            index = int(part)
        except ValueError:
            return False, None
        return (0 <= index < len(container)), index

    return False, None


def _walk(node: Any, check: Check, callback: Transform) -> None:
    if isinstance(node, dict):
        items = node.items()
    elif isinstance(node, list):
        items = enumerate(node)
    else:
        return

    for key, value in list(items):
        if check(value):
            node[key] = callback(value)
        elif isinstance(value, (dict, list)):
            _walk(value, check, callback)


def walk_values(
    obj: Any,
    path: Optional[str],
    check: Check,
    callback: Transform,
) -> Any:
    """
    Replace every node matching ``check`` with ``callback(node)``.

    With a path, only the addressed node is considered: if it matches it is
    replaced and the walk stops, otherwise the walk continues below it. A
    path missing from the document selects nothing.

    Returns:
        the (possibly replaced) root
    """

    parts = split_path(path) if path else []

    if not parts:
        if check(obj):
            return callback(obj)
        _walk(obj, check, callback)
        return obj

    container = obj
    for idx, part in enumerate(parts):
        found, key = _child(container, part)
        if not found:
            logger.debug("Path %r not found at segment %r", path, part)
            return obj

        value = container[key]
        if idx == len(parts) - 1 and check(value):
            container[key] = callback(value)
            return obj
        container = value

    _walk(container, check, callback)
    return obj


def walk_string_values(obj: Any, path: Optional[str], callback: Transform) -> Any:
    return walk_values(obj, path, lambda value: isinstance(value, str), callback)


def query_values(obj: Any, path: Optional[str]) -> List[Any]:
    """Collect the values a path selects, without modifying the document."""

    found: List[Any] = []

    def collect(value: Any) -> Any:
        found.append(value)
        return value

    walk_values(obj, path, lambda value: True, collect)
    return found
