from __future__ import annotations

import base64
import logging
from datetime import datetime
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    Iterable,
    List,
    Optional,
    Set,
    Tuple,
    TypeVar,
    Union,
)

import httpx

from state.session import ERROR, NOT_LOGGED_IN, UNKNOWN_METHOD, SessionState

from .envelope import NameValuePairs, decode_array, to_text, unwrap_content
from .errors import EnvelopeDecodeError, TTRSSTransportError
from .mappers import map_article, map_category, map_counter, map_feed
from .models import (
    ALL_FEEDS,
    VIEW_MODES,
    Article,
    ArticleField,
    Category,
    Counter,
    Feed,
    UpdateMode,
)
from .transport import HttpTransport, Transport


logger = logging.getLogger(__name__)

T = TypeVar("T")

SESSION_ID = "session_id"

# Query parameters after `op`, in the order the server documents them
OPERATIONS: Dict[str, Tuple[str, ...]] = {
    "login": ("user", "password"),
    "getCategories": ("sid",),
    "getFeeds": ("sid", "cat_id"),
    "getHeadlines": ("sid", "feed_id", "limit", "view_mode"),
    "getNewArticles": ("sid", "unread", "time"),
    "getArticle": ("sid", "article_id"),
    "updateArticle": ("sid", "article_ids", "mode", "field"),
    "catchupFeed": ("sid", "feed_id", "is_cat"),
    "getCounters": ("sid",),
}


def _format(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(_format(v) for v in value)
    return str(value)


def build_query(op: str, *values: Any) -> List[Tuple[str, str]]:
    """
    Ordered query parameters for `op`.

    `values` fill the operation's parameters positionally; for everything except
    login the first one is the session id.
    """
    try:
        names = OPERATIONS[op]
    except KeyError:
        raise ValueError(f"Unknown operation: {op}") from None
    if len(values) != len(names):
        raise ValueError(f"{op} takes {len(names)} parameters, got {len(values)}")
    return [("op", op)] + [(name, _format(v)) for name, v in zip(names, values)]


def _entity_key(item: Union[Article, Category, Feed]) -> Optional[int]:
    # Zero-valued placeholders stand for records that failed to decode; keep them all
    if item == type(item)():
        return None
    return item.id


def _unique(items: Iterable[T], key: Callable[[T], Optional[Hashable]]) -> List[T]:
    """Items in order, dropping repeats of an already seen key (None keys are kept)."""
    out: List[T] = []
    seen: Set[Hashable] = set()
    for item in items:
        k = key(item)
        if k is not None:
            if k in seen:
                continue
            seen.add(k)
        out.append(item)
    return out


class TTRSSClient:
    """
    Session-aware client for the Tiny Tiny RSS JSON API.

    Notes
    - Logs in lazily on first use and reuses the session id until the server rejects
      it. A rejected session triggers one re-login and one replay of the request.
    - Login sends the password as given and falls back to its base64 encoding once.
    - Failures are not raised. They land in the last-error state (`has_last_error`,
      `get_last_error`, `pull_last_error`) and the call returns an empty result.
      Poll after each call; the next failing call overwrites the message.
    - Safe to share between threads; only one login is ever in flight.
    """

    def __init__(
        self,
        server_url: str,
        user: str,
        password: str,
        *,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
        transport: Optional[Transport] = None,
        auth_retries: int = 1,
    ) -> None:
        if not server_url:
            raise ValueError("server_url is required")
        self._server_url = server_url
        self._user = user
        self._password = password
        self._auth_retries = auth_retries
        self._owns_transport = transport is None
        self._transport: Transport = transport or HttpTransport(timeout=timeout, client=client)
        self._session = SessionState()

    def close(self) -> None:
        if self._owns_transport:
            self._transport.close()

    def __enter__(self) -> "TTRSSClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def session_id(self) -> Optional[str]:
        return self._session.token

    # --------------- Error state ---------------
    def has_last_error(self) -> bool:
        return self._session.has_last_error()

    def get_last_error(self) -> str:
        return self._session.get_last_error()

    def pull_last_error(self) -> str:
        return self._session.pull_last_error()

    # --------------- Public API ---------------
    def get_categories(self) -> List[Category]:
        content = self._execute("getCategories")
        categories = (
            map_category(record, self._session.record_error)[0]
            for record in self._decode_records(content)
        )
        return _unique(categories, _entity_key)

    def get_feeds(self, category_id: int = ALL_FEEDS) -> Dict[int, List[Feed]]:
        """Feeds grouped by owning category id; the default fetches every feed."""
        content = self._execute("getFeeds", category_id)
        feeds = (
            map_feed(record, self._session.record_error)[0]
            for record in self._decode_records(content)
        )
        grouped: Dict[int, List[Feed]] = {}
        for feed in _unique(feeds, _entity_key):
            grouped.setdefault(feed.category_id, []).append(feed)
        return grouped

    def get_headlines(
        self,
        feed_id: int,
        limit: int = 100,
        view_mode: str = "all_articles",
    ) -> List[Article]:
        if view_mode not in VIEW_MODES:
            raise ValueError(f"view_mode must be one of {', '.join(VIEW_MODES)}")
        content = self._execute("getHeadlines", feed_id, limit, view_mode)
        return self._articles(self._decode_records(content))

    def get_article(self, article_ids: Iterable[int]) -> List[Article]:
        content = self._execute("getArticle", list(article_ids))
        return self._articles(self._decode_records(content))

    def get_new_articles(
        self, article_state: int, since: Union[int, datetime]
    ) -> List[Category]:
        """
        Articles changed since `since`, nested as categories -> feeds -> articles.

        Optional server extension: an unknown-method reply yields [] without an error.
        Categories without feeds and feeds without articles are left out.
        """
        timestamp = int(since.timestamp()) if isinstance(since, datetime) else int(since)
        content = self._execute("getNewArticles", article_state, timestamp)
        self._session.discard_error(UNKNOWN_METHOD)

        out: List[Category] = []
        for record in self._decode_records(content):
            category, feed_records = map_category(record, self._session.record_error)
            feeds: List[Feed] = []
            for feed_record in feed_records or []:
                feed, article_records = map_feed(feed_record, self._session.record_error)
                if not article_records:
                    continue
                articles = self._articles(article_records)
                feeds.append(feed.model_copy(update={"articles": articles}))
            if feeds:
                out.append(category.model_copy(update={"feeds": feeds}))
        return out

    def get_counters(self) -> List[Counter]:
        """
        Unread counters for feeds and categories with numeric ids.

        Optional server extension: an unknown-method reply yields [] without an error.
        """
        content = self._execute("getCounters")
        self._session.discard_error(UNKNOWN_METHOD)

        counters = (
            map_counter(record, self._session.record_error)
            for record in self._decode_records(content)
        )
        return _unique(
            (c for c in counters if c is not None),
            lambda c: (c.is_category, c.id),
        )

    def update_article(self, article_ids: Iterable[int], mode: int, field: int) -> None:
        ids = list(article_ids)
        if not ids:
            logger.debug("updateArticle skipped, no article ids")
            return
        self._execute("updateArticle", ids, int(mode), int(field))

    def set_article_read(self, article_ids: Iterable[int], article_state: int) -> None:
        """
        Set the unread flag of `article_ids` to `article_state`.

        `article_state` is an UpdateMode: 0 marks read, 1 unread, 2 toggles.
        """
        self.update_article(article_ids, UpdateMode(article_state), ArticleField.UNREAD)

    def set_read(self, feed_id: int, is_category: bool) -> None:
        """Mark a whole feed (or category, when `is_category`) as read."""
        self._execute("catchupFeed", feed_id, is_category)

    # --------------- Internal ---------------
    def _articles(self, records: Iterable[Any]) -> List[Article]:
        articles = (map_article(record, self._session.record_error) for record in records)
        return _unique(articles, _entity_key)

    def _decode_records(self, content: str) -> List[Any]:
        # Server errors were recorded by _execute; an empty payload is an empty result
        if not content or content.startswith(ERROR):
            return []
        try:
            return decode_array(content)
        except EnvelopeDecodeError as exc:
            self._session.record_error(f"Failed to decode response: {exc}")
            return []

    def _url(self, query: List[Tuple[str, str]]) -> httpx.URL:
        # Query already present in the configured URL is kept ahead of ours
        return httpx.URL(self._server_url).copy_merge_params(query)

    def _send(self, query: List[Tuple[str, str]]) -> Optional[str]:
        """Send one request and return the unwrapped payload, None if it failed."""
        try:
            body = self._transport.send(self._url(query))
        except TTRSSTransportError as exc:
            self._session.record_error(str(exc))
            return None
        return unwrap_content(body)

    def _execute(self, op: str, *params: Any) -> str:
        """
        Run `op` with the current session and return its payload.

        - No session and login fails: returns "" without sending `op`.
        - Payload says NOT_LOGGED_IN: drop the session, log in again and resend, at most
          `auth_retries` times. A rejection after that is recorded like any error.
        - Payload starting with the error marker is recorded verbatim.
        """
        if not self._session.ensure(self._login):
            return ""
        self._session.clear_error()

        retries = 0
        while True:
            token = self._session.token
            content = self._send(build_query(op, token, *params)) or ""
            if NOT_LOGGED_IN not in content or retries >= self._auth_retries:
                break
            retries += 1
            logger.warning("Not logged in, retrying %s after a new login", op)
            self._session.invalidate(token)
            if not self._session.ensure(self._login):
                return ""

        if content.startswith(ERROR):
            self._session.record_error(content)
        return content

    def _login(self) -> Optional[str]:
        token = self._request_session(self._password)
        if token is None:
            logger.info("Login failed, retrying with base64-encoded password")
            self._session.clear_error()
            encoded = base64.b64encode(self._password.encode("utf-8")).decode("ascii")
            token = self._request_session(encoded)
        if token is not None:
            logger.info("Logged in as %s", self._user)
        return token

    def _request_session(self, password: str) -> Optional[str]:
        self._session.clear_error()
        content = self._send(build_query("login", self._user, password))
        if content is None:
            return None
        if content.startswith(ERROR):
            self._session.record_error(content)
            return None
        try:
            pairs = NameValuePairs.decode(content)
        except EnvelopeDecodeError as exc:
            self._session.record_error(f"Failed to decode login response: {exc}")
            return None
        session_id = pairs.first(SESSION_ID)
        if session_id is None:
            self._session.record_error("Login response carried no session_id")
            return None
        return to_text(session_id)


__all__ = [
    "OPERATIONS",
    "TTRSSClient",
    "build_query",
]
