from __future__ import annotations


class TTRSSError(RuntimeError):
    """Base error for the Tiny Tiny RSS connector."""


class TTRSSTransportError(TTRSSError):
    """Request could not be sent or the response could not be read."""


class EnvelopeDecodeError(TTRSSError):
    """Response body (or a nested record) is not the JSON shape we expected."""


__all__ = [
    "TTRSSError",
    "TTRSSTransportError",
    "EnvelopeDecodeError",
]
