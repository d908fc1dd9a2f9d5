"""Sliding-window admission gate for capability calls."""

from __future__ import annotations

import collections
import time
from collections.abc import Callable

TimeFn = Callable[[], float]


class SlidingWindowRateLimiter:
    """Admit at most `max_requests` calls per rolling `window_seconds`.

    Expired timestamps are pruned lazily on each admission check. Bursts up to
    the cap pass immediately. Disabled if max_requests <= 0 or window_seconds <= 0.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        *,
        now_fn: TimeFn | None = None,
    ) -> None:
        self.max_requests = max(0, int(max_requests))
        self.window_seconds = max(0.0, float(window_seconds))
        self._now = now_fn or time.monotonic
        self._events: collections.deque[float] = collections.deque()
        self._enabled = self.max_requests > 0 and self.window_seconds > 0

    def _prune(self, now: float) -> None:
        events = self._events
        while events and now - events[0] >= self.window_seconds:
            events.popleft()

    def admit(self) -> bool:
        if not self._enabled:
            return True

        now = self._now()
        self._prune(now)
        if len(self._events) >= self.max_requests:
            return False

        self._events.append(now)
        return True

    def retry_in(self) -> float:
        """Seconds until the oldest admitted call leaves the window."""
        if not self._enabled or not self._events:
            return 0.0
        now = self._now()
        self._prune(now)
        if len(self._events) < self.max_requests:
            return 0.0
        return max(0.0, (self._events[0] + self.window_seconds) - now)

    def __len__(self) -> int:
        return len(self._events)


__all__ = ["SlidingWindowRateLimiter", "TimeFn"]
