"""
Decoding of the Tiny Tiny RSS response envelope.

Every API response looks like ``{"seq": 0, "status": 0, "content": ...}``. Objects are
kept as ordered name/value pairs instead of dicts: field order survives and a field name
may appear more than once.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Iterator, List, Optional, Tuple

from .errors import EnvelopeDecodeError


logger = logging.getLogger(__name__)

CONTENT = "content"

_MISSING = object()


class NameValuePairs:
    """
    Order-preserving association list decoded from a JSON object.

    - `names` and `values` are equal-length tuples; index i of one belongs to index i
      of the other.
    - Nested objects are `NameValuePairs` as well, nested arrays are lists.
    - Lookups scan linearly and stop at the first match.
    """

    __slots__ = ("names", "values")

    def __init__(self, pairs: Iterable[Tuple[str, Any]] = ()) -> None:
        names: List[str] = []
        values: List[Any] = []
        for name, value in pairs:
            names.append(name)
            values.append(value)
        self.names: Tuple[str, ...] = tuple(names)
        self.values: Tuple[Any, ...] = tuple(values)

    @classmethod
    def decode(cls, text: Optional[str]) -> "NameValuePairs":
        """Decode a JSON object; raises EnvelopeDecodeError on anything else."""
        data = _loads(text)
        if not isinstance(data, NameValuePairs):
            raise EnvelopeDecodeError(f"Expected a JSON object, got {type(data).__name__}")
        return data

    @classmethod
    def from_value(cls, value: Any) -> "NameValuePairs":
        """Accept an already decoded object or a JSON-encoded string of one."""
        if isinstance(value, NameValuePairs):
            return value
        if isinstance(value, str):
            return cls.decode(value)
        if isinstance(value, dict):
            return cls(value.items())
        raise EnvelopeDecodeError(f"Expected a JSON object, got {type(value).__name__}")

    def first(self, name: str, default: Any = None) -> Any:
        for n, v in self:
            if n == name:
                return v
        return default

    def encode(self) -> str:
        """Compact JSON text, duplicates and order preserved."""
        parts = [
            f"{json.dumps(name, ensure_ascii=False)}:{_encode_value(value)}"
            for name, value in self
        ]
        return "{" + ",".join(parts) + "}"

    def __iter__(self) -> Iterator[Tuple[str, Any]]:
        return iter(zip(self.names, self.values))

    def __len__(self) -> int:
        return len(self.names)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NameValuePairs):
            return NotImplemented
        return self.names == other.names and self.values == other.values

    def __repr__(self) -> str:
        return f"NameValuePairs({list(self)!r})"


def _loads(text: Optional[str]) -> Any:
    if text is None or not text.strip():
        raise EnvelopeDecodeError("Empty response body")
    try:
        return json.loads(text, object_pairs_hook=NameValuePairs)
    except ValueError as exc:  # json.JSONDecodeError
        raise EnvelopeDecodeError(f"Malformed JSON: {exc}") from exc


def _encode_value(value: Any) -> str:
    if isinstance(value, NameValuePairs):
        return value.encode()
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_encode_value(v) for v in value) + "]"
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def decode_array(text: Optional[str]) -> List[Any]:
    """Decode a top-level JSON array; raises EnvelopeDecodeError on anything else."""
    data = _loads(text)
    if not isinstance(data, list):
        raise EnvelopeDecodeError(f"Expected a JSON array, got {type(data).__name__}")
    return data


def to_text(value: Any) -> str:
    """
    Render a decoded JSON value as text.

    Strings pass through; objects and arrays are re-encoded as compact JSON so they can
    be decoded again by a later pass; booleans follow JSON spelling.
    """
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return _encode_value(value)


def unwrap_content(body: Optional[str]) -> str:
    """
    Extract the payload carried under the envelope's first "content" field.

    An empty body, a body without "content" or one that does not decode yields "".
    Operations treat an empty payload as an empty result, so this never raises.
    """
    if not body:
        return ""
    try:
        envelope = NameValuePairs.decode(body)
    except EnvelopeDecodeError as exc:
        logger.warning("Ignoring undecodable response envelope: %s", exc)
        return ""
    content = envelope.first(CONTENT, _MISSING)
    if content is _MISSING:
        return ""
    return to_text(content)


__all__ = [
    "CONTENT",
    "NameValuePairs",
    "decode_array",
    "to_text",
    "unwrap_content",
]
