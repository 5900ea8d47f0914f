"""
JSON decoding and encoding that survive arbitrarily deep nesting.

Proof payloads returned by the backend can be nested far deeper than the
interpreter's recursion limit allows :func:`json.loads` to handle. Documents
are parsed with :func:`json.loads` first; when that hits the recursion limit
the text is parsed again by an explicit-stack parser whose depth is bounded by
memory instead of the call stack.
"""

from __future__ import annotations

import json
import re
from json.decoder import scanstring
from json.scanner import NUMBER_RE
from typing import Any, Iterator, List, Mapping, Union

from ..base import DecodeError

_WHITESPACE = re.compile(r"[ \t\n\r]*")
_CONSTANTS = (
    ("null", None),
    ("true", True),
    ("false", False),
    ("NaN", float("nan")),
    ("Infinity", float("inf")),
    ("-Infinity", float("-inf")),
)


class _ObjectFrame:
    __slots__ = ("members", "key")

    def __init__(self, key: str) -> None:
        self.members: dict[str, Any] = {}
        self.key = key


def _skip(text: str, pos: int) -> int:
    return _WHITESPACE.match(text, pos).end()


def _error(message: str, pos: int) -> DecodeError:
    return DecodeError(f"{message} at char {pos}")


def _parse_key(text: str, pos: int) -> tuple[str, int]:
    if not text.startswith('"', pos):
        raise _error("Expecting property name enclosed in double quotes", pos)
    try:
        key, pos = scanstring(text, pos + 1, True)
    except json.JSONDecodeError as exc:
        raise DecodeError(str(exc)) from exc
    pos = _skip(text, pos)
    if not text.startswith(":", pos):
        raise _error("Expecting ':' delimiter", pos)
    return key, _skip(text, pos + 1)


def _parse_scalar(text: str, pos: int) -> tuple[Any, int]:
    if text.startswith('"', pos):
        try:
            return scanstring(text, pos + 1, True)
        except json.JSONDecodeError as exc:
            raise DecodeError(str(exc)) from exc

    match = NUMBER_RE.match(text, pos)
    if match is not None:
        integer, frac, exp = match.groups()
        if frac or exp:
            return float(integer + (frac or "") + (exp or "")), match.end()
        return int(integer), match.end()

    for literal, value in _CONSTANTS:
        if text.startswith(literal, pos):
            return value, pos + len(literal)
    raise _error("Expecting value", pos)


def loads_iterative(text: str) -> Any:
    """Parse ``text`` keeping open containers on a heap-allocated stack."""

    stack: List[Union[list, _ObjectFrame]] = []
    end = len(text)
    pos = _skip(text, 0)

    while True:
        if text.startswith("[", pos):
            pos = _skip(text, pos + 1)
            if text.startswith("]", pos):
                value: Any = []
                pos += 1
            else:
                stack.append([])
                continue
        elif text.startswith("{", pos):
            pos = _skip(text, pos + 1)
            if text.startswith("}", pos):
                value = {}
                pos += 1
            else:
                key, pos = _parse_key(text, pos)
                stack.append(_ObjectFrame(key))
                continue
        else:
            value, pos = _parse_scalar(text, pos)

        # Attach the finished value and close every container that ends here.
        while True:
            pos = _skip(text, pos)
            if not stack:
                if pos != end:
                    raise _error("Extra data", pos)
                return value

            top = stack[-1]
            if isinstance(top, list):
                top.append(value)
                closer = "]"
            else:
                top.members[top.key] = value
                closer = "}"

            if text.startswith(",", pos):
                pos = _skip(text, pos + 1)
                if isinstance(top, _ObjectFrame):
                    top.key, pos = _parse_key(text, pos)
                break
            if text.startswith(closer, pos):
                pos += 1
                stack.pop()
                value = top if isinstance(top, list) else top.members
                continue
            raise _error(f"Expecting ',' or '{closer}' delimiter", pos)


class _Frame:
    __slots__ = ("items", "closer", "is_object", "first")

    def __init__(self, items: Iterator[Any], closer: str, is_object: bool) -> None:
        self.items = items
        self.closer = closer
        self.is_object = is_object
        self.first = True


_DONE = object()


def dumps_iterative(value: Any) -> str:
    """Serialise ``value`` compactly without recursing into nested containers."""

    parts: List[str] = []
    stack: List[_Frame] = []

    def open_value(item: Any) -> None:
        if isinstance(item, Mapping):
            parts.append("{")
            stack.append(_Frame(iter(item.items()), "}", True))
        elif isinstance(item, (list, tuple)):
            parts.append("[")
            stack.append(_Frame(iter(item), "]", False))
        else:
            parts.append(json.dumps(item))

    open_value(value)
    while stack:
        frame = stack[-1]
        item = next(frame.items, _DONE)
        if item is _DONE:
            parts.append(frame.closer)
            stack.pop()
            continue
        if not frame.first:
            parts.append(",")
        frame.first = False
        if frame.is_object:
            key, item = item
            parts.append(json.dumps(key if isinstance(key, str) else str(key)) + ":")
        open_value(item)
    return "".join(parts)


def encode_json(value: Any) -> str:
    """Compact JSON encoding that, like :func:`decode_json`, tolerates any nesting depth."""

    try:
        return json.dumps(value, separators=(",", ":"))
    except RecursionError:
        return dumps_iterative(value)


def decode_json(raw: Union[str, bytes, bytearray]) -> Any:
    """
    Decode a JSON document.

    Raises
    ------
    DecodeError
        When the document is malformed. Nesting depth alone never causes a failure.
    """

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Response body is not valid UTF-8: {exc}") from exc

    try:
        return json.loads(raw)
    except RecursionError:
        return loads_iterative(raw)
    except ValueError as exc:
        raise DecodeError(f"Invalid JSON: {exc}") from exc


__all__ = ["decode_json", "dumps_iterative", "encode_json", "loads_iterative"]
