"""
Shared per-client state.

Holds the session token and the last-error side channel that every call on a
client reads and writes.
"""

from .session import SessionState

__all__ = ["SessionState"]
