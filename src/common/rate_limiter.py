from __future__ import annotations

import time
from collections import deque
from typing import Deque


class RateLimitError(RuntimeError):
    """Raised when a request would exceed the rate limit."""


class SlidingWindowRateLimiter:
    """
    Refuses calls beyond `max_calls` within any `per_seconds` window.

    Never waits: a refused call raises `RateLimitError` and the caller reports
    it. Public RPC clusters throttle per IP; this keeps a single session under
    that budget. Not a distributed limiter.
    """

    def __init__(self, max_calls: int, per_seconds: float, *, clock=time.monotonic):
        if max_calls <= 0:
            raise ValueError("max_calls must be > 0")
        if per_seconds <= 0:
            raise ValueError("per_seconds must be > 0")
        self._max_calls = max_calls
        self._per_seconds = per_seconds
        self._events: Deque[float] = deque()
        self._clock = clock

    def acquire(self) -> None:
        """Record one call, or raise RateLimitError if the window is full."""
        now = self._clock()
        window_start = now - self._per_seconds
        while self._events and self._events[0] <= window_start:
            self._events.popleft()
        if len(self._events) >= self._max_calls:
            raise RateLimitError(f"{self._max_calls} RPC requests already issued in the last {self._per_seconds:g}s")
        self._events.append(now)
