"""In-memory sliding window limiter guarding application submissions."""

from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from threading import Lock
from typing import Deque, DefaultDict, Protocol


@dataclass(frozen=True, slots=True)
class RateDecision:
    allowed: bool
    retry_after: int = 0


class SubmissionLimiter(Protocol):
    def check(self, key: str) -> RateDecision: ...


class SlidingWindowRateLimiter:
    """Thread-safe sliding window rate limiter."""

    def __init__(self, max_requests: int, window_seconds: int) -> None:
        self._max_requests = max_requests
        self._window = window_seconds
        self._events: DefaultDict[str, Deque[float]] = defaultdict(deque)
        self._lock = Lock()
        self._last_sweep = time.monotonic()

    def check(self, key: str) -> RateDecision:
        """Record an attempt for ``key`` and report whether it fits within the window.

        Denied attempts are not recorded; ``retry_after`` is the number of
        whole seconds until the oldest recorded attempt leaves the window.
        """
        now = time.monotonic()
        with self._lock:
            if now - self._last_sweep >= self._window:
                self._sweep(now)
            queue = self._events[key]
            while queue and now - queue[0] >= self._window:
                queue.popleft()
            if len(queue) >= self._max_requests:
                wait = self._window - (now - queue[0])
                return RateDecision(allowed=False, retry_after=max(1, math.ceil(wait)))
            queue.append(now)
            return RateDecision(allowed=True)

    def _sweep(self, now: float) -> None:
        """Forget keys whose newest attempt has left the window."""
        idle = [key for key, queue in self._events.items() if not queue or now - queue[-1] >= self._window]
        for key in idle:
            del self._events[key]
        self._last_sweep = now
