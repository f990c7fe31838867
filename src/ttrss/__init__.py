"""
Tiny Tiny RSS JSON API connector.

Modules:
- client: session-aware API client (login, re-login on rejected session, operations)
- envelope: ordered name/value decoding of response envelopes
- mappers: field tables projecting name/value pairs onto the models
- models: Category, Feed, Article, Counter
- transport: httpx-backed request primitive
"""

__all__ = [
    "client",
    "envelope",
    "errors",
    "mappers",
    "models",
    "transport",
]
