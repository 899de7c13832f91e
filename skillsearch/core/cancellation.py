"""Cooperative cancellation shared between callers and worker threads."""

import threading
import time
from typing import Optional

# Poll interval used while waiting on a linked parent token.
_POLL_INTERVAL = 0.05


class CancelToken:
    """Cancellation flag with optional parent.

    A child token reports cancelled when either itself or any ancestor
    has been cancelled. Cancelling a child never affects its parent.
    """

    def __init__(self, parent: Optional["CancelToken"] = None):
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def child(self) -> "CancelToken":
        """Derive a token that is cancelled together with this one."""
        return CancelToken(parent=self)

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds, waking early on cancellation.

        Returns:
            True if the token was cancelled.
        """
        if self._parent is None:
            return self._event.wait(timeout)

        deadline = time.monotonic() + timeout
        while not self.cancelled:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._event.wait(min(remaining, _POLL_INTERVAL))
        return True
