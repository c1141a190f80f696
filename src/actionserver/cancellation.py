"""
Per-request cancellation.

A CancellationToken is created for every dispatched request and reachable
from the handler as `sender.cancellation`. It fires when:

- the server is stopping and the drain timeout ran out,
- a write to the client failed (the client went away),
- the optional per-request deadline passed.

Long-running handlers should pace themselves with token.sleep() instead of
time.sleep(), so a cancelled stream stops at the next pause rather than at
the next write.
"""

import threading
import time
from typing import Optional

from .errors import RequestCancelledError


class CancellationToken:
    """
    A one-way cancellation flag with an optional monotonic deadline.

    Thread-safe: the server cancels from its own thread while the handler
    polls or sleeps on the worker thread.
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Seconds from now after which the token counts as
                     cancelled. None means no deadline.
        """
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason = ""
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    @property
    def reason(self) -> str:
        return self._reason

    @property
    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the token. Later calls keep the first reason."""
        with self._lock:
            if not self._event.is_set():
                self._reason = reason
                self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelledError(f"Request cancelled: {self._reason}")

    def sleep(self, seconds: float) -> None:
        """
        Wait up to `seconds`, waking early on cancellation.

        Raises:
            RequestCancelledError: If the token is or becomes cancelled.
        """
        self.raise_if_cancelled()
        remaining = self.remaining
        if remaining is not None and remaining <= seconds:
            # The deadline falls inside this sleep.
            self._event.wait(remaining)
            self.cancel("deadline exceeded")
        elif seconds > 0:
            self._event.wait(seconds)
        self.raise_if_cancelled()

    def __repr__(self) -> str:
        state = f"cancelled ({self._reason})" if self._event.is_set() else "active"
        return f"<CancellationToken {state}>"
