"""Sliding-window request limiter shared by all Web API callers.

At most `capacity` permits are granted within any `period` seconds. Waiters
are served strictly in arrival order. Permits expire with time, so there is
nothing to release and a caller that dies mid-request cannot leak capacity.
"""

from __future__ import annotations
import logging
import threading
import time
from collections import deque
from typing import Callable, Deque

from ..errors import CanceledError
from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

# Upper bound on how long a waiter sleeps between cancellation checks.
POLL_INTERVAL = 0.05


class RateLimiter:
    def __init__(self, capacity: int = 2, period: float = 1.0, clock: Callable[[], float] = time.monotonic):
        if capacity < 1:
            raise ValueError(f"Invalid capacity: {capacity}. Must be positive integer")
        if period <= 0:
            raise ValueError(f"Invalid period: {period}. Must be positive")
        self.capacity = capacity
        self.period = period
        self._clock = clock
        self._granted: Deque[float] = deque()
        self._waiters: Deque[object] = deque()
        self._cond = threading.Condition()

    def _prune(self, now: float) -> None:
        while self._granted and self._granted[0] <= now - self.period:
            self._granted.popleft()

    def acquire(self, cancel: CancellationToken | None = None) -> None:
        """Block until a permit is granted.

        Raises:
            CanceledError: `cancel` fired before a permit was granted; no permit is consumed
        """
        ticket = object()
        with self._cond:
            self._waiters.append(ticket)
            try:
                while True:
                    if cancel is not None and cancel.cancelled:
                        raise CanceledError("Abort was signaled while waiting for rate limiter")
                    now = self._clock()
                    self._prune(now)
                    is_head = self._waiters[0] is ticket
                    if is_head and len(self._granted) < self.capacity:
                        self._waiters.popleft()
                        self._granted.append(now)
                        self._cond.notify_all()
                        return
                    timeout = POLL_INTERVAL
                    if is_head and self._granted:
                        timeout = min(timeout, max(self._granted[0] + self.period - now, 0.0))
                    self._cond.wait(timeout)
            except BaseException:
                if ticket in self._waiters:
                    self._waiters.remove(ticket)
                    self._cond.notify_all()
                raise

    def __enter__(self) -> RateLimiter:
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        return None

    @property
    def waiting(self) -> int:
        with self._cond:
            return len(self._waiters)


__all__ = ["RateLimiter", "POLL_INTERVAL"]
