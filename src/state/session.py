from __future__ import annotations

import threading
from typing import Callable, Optional


# Error payloads the server places under "content"
ERROR = '{"error":'
NOT_LOGGED_IN = ERROR + '"NOT_LOGGED_IN"}'
UNKNOWN_METHOD = ERROR + '"UNKNOWN_METHOD"}'


class SessionState:
    """
    Session token and last-error state shared by every call on one client.

    - Two states: unauthenticated (`token is None`) and authenticated.
    - `ensure(login)` runs at most one login at a time. Callers that queue behind a
      running login re-check the state once they get the lock instead of logging in
      again.
    - The error fields are a side channel: any step may record a message, the caller
      polls it after each operation. Concurrent calls may overwrite each other's
      message; visibility is best-effort, not per call.

    Field reads/writes go through a small lock; the login lock is held only around the
    login itself.
    """

    def __init__(self) -> None:
        self._token: Optional[str] = None
        self._last_error = ""
        self._has_error = False
        self._lock = threading.Lock()
        self._login_lock = threading.Lock()

    # --------------- Session ---------------
    @property
    def token(self) -> Optional[str]:
        with self._lock:
            return self._token

    def is_authenticated(self) -> bool:
        with self._lock:
            return self._token is not None and self._last_error != NOT_LOGGED_IN

    def ensure(self, login: Callable[[], Optional[str]]) -> bool:
        """
        Make sure a session token is held, calling `login` when there is none.

        `login` returns the new token or None; it records its own failures.
        Returns True when authenticated afterwards.
        """
        if self.is_authenticated():
            return True
        with self._login_lock:
            if self.is_authenticated():
                return True
            with self._lock:
                self._token = None
            token = login()
            with self._lock:
                self._token = token
            return token is not None

    def invalidate(self, stale_token: Optional[str] = None) -> None:
        """Drop the token; with `stale_token`, only if it is still the current one."""
        with self._lock:
            if stale_token is None or self._token == stale_token:
                self._token = None

    # --------------- Error state ---------------
    def record_error(self, message: str) -> None:
        with self._lock:
            self._last_error = message
            self._has_error = True

    def clear_error(self) -> None:
        with self._lock:
            self._last_error = ""
            self._has_error = False

    def discard_error(self, fragment: str) -> bool:
        """Clear the last error only if it contains `fragment`; True when cleared."""
        with self._lock:
            if not self._has_error or fragment not in self._last_error:
                return False
            self._last_error = ""
            self._has_error = False
            return True

    def has_last_error(self) -> bool:
        with self._lock:
            return self._has_error

    def get_last_error(self) -> str:
        """Peek at the last error without clearing it."""
        with self._lock:
            return self._last_error

    def pull_last_error(self) -> str:
        """Return the last error and clear it."""
        with self._lock:
            message = self._last_error
            self._last_error = ""
            self._has_error = False
            return message


__all__ = [
    "ERROR",
    "NOT_LOGGED_IN",
    "UNKNOWN_METHOD",
    "SessionState",
]
