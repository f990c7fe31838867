from __future__ import annotations

import logging
import time
from typing import Optional, Protocol, Union

import httpx

from .errors import TTRSSTransportError


logger = logging.getLogger(__name__)

URLTypes = Union[httpx.URL, str]


class Transport(Protocol):
    """Anything that can turn a request URL into a response body."""

    def send(self, url: URLTypes) -> str:
        ...

    def close(self) -> None:
        ...


def redact(url: URLTypes) -> str:
    """URL text with the `password` query value replaced by `*`."""
    u = httpx.URL(url)
    if "password" in u.params:
        u = u.copy_set_param("password", "*")
    return str(u)


class HttpTransport:
    """
    Blocking HTTP transport for the JSON API.

    Notes
    - Every request is a POST of the query-string URL, like the web client does.
    - Non-2xx responses and any httpx error (timeouts, connection failures, redirect
      loops, undecodable bodies) raise TTRSSTransportError.
      There is no retry here; callers decide what a failed request means.
    """

    def __init__(
        self,
        *,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def send(self, url: URLTypes) -> str:
        start = time.monotonic()
        try:
            resp = self._client.post(url)
            # Body decoding (content-encoding, charset) can fail here too
            text = resp.text
        except httpx.HTTPError as exc:
            raise TTRSSTransportError(f"Request failed: {exc}") from exc
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug("Requesting URL: %s (took %d ms)", redact(url), elapsed_ms)

        if not resp.is_success:
            raise TTRSSTransportError(
                f"HTTP {resp.status_code} from server: {text[:200]}"
            )
        return text


__all__ = [
    "HttpTransport",
    "Transport",
    "redact",
]
