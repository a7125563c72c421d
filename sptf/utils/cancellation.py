"""Cooperative cancellation for blocking calls.

Two cancellation sources meet in every Web API call: the global shutdown
token owned by AbortManager, and the per-call token supplied by the host.
`AbortManager.linked_scope()` joins them into one token for the duration of a
call and unlinks it afterwards so a later shutdown does not touch calls that
already completed.
"""

from __future__ import annotations
import itertools
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

from ..errors import CanceledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe, one-shot cancellation flag with callbacks.

    Once cancelled a token stays cancelled. Callbacks run exactly once, on
    the thread that calls cancel(), or immediately on registration when the
    token is already cancelled.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._ids = itertools.count()
        self._timer: Optional[threading.Timer] = None

    @classmethod
    def with_timeout(cls, seconds: float, name: str = "") -> CancellationToken:
        """Token that cancels itself after `seconds`."""
        token = cls(name)
        timer = threading.Timer(seconds, token.cancel)
        timer.daemon = True
        token._timer = timer
        timer.start()
        return token

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or `timeout` elapses. Returns True if cancelled."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self, message: str = "Abort was signaled, canceling request...") -> None:
        if self._event.is_set():
            raise CanceledError(message)

    def register(self, callback: Callable[[], None]) -> int:
        """Register `callback` to run on cancellation; returns a handle for unregister()."""
        with self._lock:
            if not self._event.is_set():
                handle = next(self._ids)
                self._callbacks[handle] = callback
                return handle
        callback()
        return -1

    def unregister(self, handle: int) -> None:
        with self._lock:
            self._callbacks.pop(handle, None)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"<CancellationToken {self.name or hex(id(self))} {state}>"


def sleep_for(seconds: float, token: CancellationToken | None = None) -> None:
    """Sleep that wakes up immediately on cancellation.

    Raises:
        CanceledError: Token was cancelled before or during the sleep
    """
    if token is None:
        token = CancellationToken()
    if token.wait(max(seconds, 0.0)):
        raise CanceledError("Abort was signaled during wait")


class AbortManager:
    """Owns the global shutdown token and links per-call tokens to it."""

    def __init__(self) -> None:
        self.shutdown_token = CancellationToken("shutdown")
        self._active = 0
        self._idle = threading.Condition()

    @property
    def is_shutting_down(self) -> bool:
        return self.shutdown_token.cancelled

    @contextmanager
    def linked_scope(self, abort: CancellationToken | None = None) -> Iterator[CancellationToken]:
        """Yield a token cancelled by either the global token or `abort`.

        Links are dissolved when the scope exits.
        """
        linked = CancellationToken("linked")
        parents = [self.shutdown_token] + ([abort] if abort is not None else [])
        handles = [(parent, parent.register(linked.cancel)) for parent in parents]
        with self._idle:
            self._active += 1
        try:
            yield linked
        finally:
            for parent, handle in handles:
                parent.unregister(handle)
            with self._idle:
                self._active -= 1
                self._idle.notify_all()

    @property
    def active_scopes(self) -> int:
        with self._idle:
            return self._active

    def shutdown(self, timeout: float | None = None) -> bool:
        """Fire the global token and wait for in-flight scopes to exit.

        Returns:
            True if every scope exited within `timeout`
        """
        logger.debug("Abort manager: signaling shutdown")
        self.shutdown_token.cancel()
        with self._idle:
            return self._idle.wait_for(lambda: self._active == 0, timeout=timeout)


__all__ = ["CancellationToken", "AbortManager", "sleep_for"]
