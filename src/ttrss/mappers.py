"""
Projection of decoded name/value pairs onto the domain models.

Each entity has a table `field name -> FieldSpec(attribute, converter)`; `map_fields`
walks the pairs once and applies it. Unknown fields are ignored, so new server fields do
not break decoding.

Nested collections ("feeds" under a category, "articles" under a feed) are not decoded
inline. The mapper hands the raw sub-array back next to the entity and the caller runs a
second pass when it needs the nested entities.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from .envelope import NameValuePairs, decode_array, to_text
from .errors import EnvelopeDecodeError
from .models import Article, Category, Counter, Feed


logger = logging.getLogger(__name__)

ErrorSink = Callable[[str], None]
M = TypeVar("M", bound=BaseModel)

COUNTER_CAT = "cat"

_MISSING = object()
_DECODE_ERRORS = (ValueError, TypeError, OverflowError, EnvelopeDecodeError)


# --------------- Converters ---------------
def as_str(value: Any) -> str:
    return to_text(value)


def as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Expected an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return int(float(value))
    raise ValueError(f"Expected an integer, got {value!r}")


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValueError(f"Expected a boolean, got {value!r}")


def as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return decode_array(value)
    raise ValueError(f"Expected an array, got {value!r}")


def epoch_millis(value: Any) -> int:
    # Seconds string with "000" appended, parsed as-is (no arithmetic)
    return int(as_str(value) + "000")


def _numeric_or_none(value: Any) -> Optional[int]:
    # "global-unread", "subscribed-feeds" and friends are not feed/category ids
    try:
        return as_int(value)
    except ValueError:
        return None


# --------------- Field tables ---------------
@dataclass(frozen=True)
class FieldSpec:
    attr: str
    convert: Callable[[Any], Any]


CATEGORY_FIELDS: Dict[str, FieldSpec] = {
    "id": FieldSpec("id", as_int),
    "title": FieldSpec("title", as_str),
    "unread": FieldSpec("unread", as_int),
}

FEED_FIELDS: Dict[str, FieldSpec] = {
    "cat_id": FieldSpec("category_id", as_int),
    "id": FieldSpec("id", as_int),
    "title": FieldSpec("title", as_str),
    "feed_url": FieldSpec("url", as_str),
    "unread": FieldSpec("unread", as_int),
}

COUNTER_FIELDS: Dict[str, FieldSpec] = {
    "kind": FieldSpec("is_category", lambda v: as_str(v) == COUNTER_CAT),
    "id": FieldSpec("id", _numeric_or_none),
    "counter": FieldSpec("count", as_int),
}


def map_attachments(records: Iterable[Any]) -> List[str]:
    """
    Collect `content_url`s of attachment records, in order and without duplicates.

    Records lacking either `id` or `content_url` (or that are not objects) are dropped.
    """
    urls: List[str] = []
    seen: set[str] = set()
    for record in records:
        try:
            pairs = NameValuePairs.from_value(record)
        except EnvelopeDecodeError:
            logger.debug("Skipping undecodable attachment record: %r", record)
            continue
        att_id = pairs.first("id", _MISSING)
        url = pairs.first("content_url", _MISSING)
        if att_id is _MISSING or url is _MISSING:
            continue
        text = as_str(url)
        if text not in seen:
            seen.add(text)
            urls.append(text)
    return urls


ARTICLE_FIELDS: Dict[str, FieldSpec] = {
    "id": FieldSpec("id", as_int),
    "feed_id": FieldSpec("feed_id", as_int),
    "title": FieldSpec("title", as_str),
    "unread": FieldSpec("is_unread", as_bool),
    "updated": FieldSpec("updated", epoch_millis),
    "content": FieldSpec("content", as_str),
    "link": FieldSpec("url", as_str),
    "comments": FieldSpec("comment_url", as_str),
    "attachments": FieldSpec("attachments", lambda v: map_attachments(as_list(v))),
}


# --------------- Scanning ---------------
def map_fields(
    pairs: NameValuePairs,
    table: Dict[str, FieldSpec],
    *,
    nested: Optional[str] = None,
) -> Tuple[Dict[str, Any], Optional[List[Any]]]:
    """
    Single linear scan of `pairs` against `table`.

    Returns the converted attribute values and, when `nested` names a field present in
    the pairs, that field's raw sub-array. Converters raise on malformed values.
    """
    values: Dict[str, Any] = {}
    nested_values: Optional[List[Any]] = None
    for name, value in pairs:
        if nested is not None and name == nested:
            nested_values = as_list(value)
            continue
        spec = table.get(name)
        if spec is None:
            continue
        values[spec.attr] = spec.convert(value)
    return values, nested_values


def _map_entity(
    model: Type[M],
    table: Dict[str, FieldSpec],
    record: Any,
    on_error: Optional[ErrorSink],
    *,
    nested: Optional[str] = None,
) -> Tuple[M, Optional[List[Any]]]:
    try:
        pairs = NameValuePairs.from_value(record)
        values, nested_values = map_fields(pairs, table, nested=nested)
        return model(**values), nested_values
    except _DECODE_ERRORS as exc:
        message = f"Failed to decode {model.__name__.lower()}: {exc}"
        logger.warning(message)
        if on_error is not None:
            on_error(message)
        return model(), None


def map_category(
    record: Any, on_error: Optional[ErrorSink] = None
) -> Tuple[Category, Optional[List[Any]]]:
    """Category plus its raw "feeds" sub-array (None when absent)."""
    return _map_entity(Category, CATEGORY_FIELDS, record, on_error, nested="feeds")


def map_feed(
    record: Any, on_error: Optional[ErrorSink] = None
) -> Tuple[Feed, Optional[List[Any]]]:
    """Feed plus its raw "articles" sub-array (None when absent)."""
    return _map_entity(Feed, FEED_FIELDS, record, on_error, nested="articles")


def map_article(record: Any, on_error: Optional[ErrorSink] = None) -> Article:
    article, _ = _map_entity(Article, ARTICLE_FIELDS, record, on_error)
    return article


def map_counter(record: Any, on_error: Optional[ErrorSink] = None) -> Optional[Counter]:
    """Counter for a numeric feed/category id; None for global pseudo-ids."""
    try:
        values, _ = map_fields(NameValuePairs.from_value(record), COUNTER_FIELDS)
    except _DECODE_ERRORS as exc:
        message = f"Failed to decode counter: {exc}"
        logger.warning(message)
        if on_error is not None:
            on_error(message)
        return None
    if values.get("id") is None:
        return None
    return Counter(**values)


__all__ = [
    "ARTICLE_FIELDS",
    "CATEGORY_FIELDS",
    "COUNTER_FIELDS",
    "FEED_FIELDS",
    "FieldSpec",
    "as_bool",
    "as_int",
    "as_list",
    "as_str",
    "epoch_millis",
    "map_article",
    "map_attachments",
    "map_category",
    "map_counter",
    "map_feed",
    "map_fields",
]
