"""
Cancellation tokens - the per-call cancellation signal.

A token can be fired from any thread. The interceptor observes it at the
transport boundary and between pipeline stages.
"""

from __future__ import annotations

import threading
from typing import Callable, List, Optional

from .faults import CancelledError


class CancellationToken:
    """
    Thread-safe, one-shot cancellation signal.

    Pass one as an argument to any interface method that declares a
    ``CancellationToken`` parameter; calls without one get a fresh token
    that never fires.

    Example:
        token = CancellationToken()
        pending = client.search("query", token)
        token.cancel("user navigated away")
    """

    __slots__ = ("_lock", "_cancelled", "_reason", "_callbacks", "_timer")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._reason: Optional[str] = None
        self._callbacks: List[Callable[[], None]] = []
        self._timer: Optional[threading.Timer] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        """Fire the token. Later calls are no-ops."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._reason = reason
            callbacks, self._callbacks = self._callbacks, []
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

        for callback in callbacks:
            callback()

    def cancel_after(self, seconds: float) -> "CancellationToken":
        """Fire the token once ``seconds`` have elapsed."""
        timer = threading.Timer(seconds, self.cancel, kwargs={"reason": f"timed out after {seconds}s"})
        timer.daemon = True
        with self._lock:
            if self._cancelled:
                return self
            if self._timer is not None:
                self._timer.cancel()
            self._timer = timer
        timer.start()
        return self

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Run ``callback`` when the token fires.

        Runs immediately if the token already fired. Returns a function
        that unregisters the callback.
        """
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)

                def remove() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return remove

        callback()
        return lambda: None

    def raise_if_cancelled(self, member: Optional[str] = None) -> None:
        if self._cancelled:
            raise CancelledError(member, reason=self._reason)

    def __repr__(self) -> str:
        state = f"cancelled reason={self._reason!r}" if self._cancelled else "active"
        return f"<CancellationToken {state}>"
