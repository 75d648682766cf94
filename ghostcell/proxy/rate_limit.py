"""Per-user sliding-log rate limiter for the completion proxy."""

from __future__ import annotations

import bisect
import logging
import threading
import time
from collections import defaultdict
from collections.abc import Callable

from ghostcell.config import RateLimitConfig

logger = logging.getLogger("ghostcell.proxy.rate_limit")


class SlidingLogRateLimiter:
    """Admits a request only if fewer than `quota` were admitted in the trailing window.

    Each user has a sorted log of admission timestamps. Pruning, counting and
    recording happen under one lock, so concurrent admissions cannot both
    slip under the quota.
    """

    def __init__(self, quota: int = 60, window_seconds: float = 60.0, *, clock: Callable[[], float] = time.time) -> None:
        self.quota = quota
        self.window_seconds = window_seconds
        self._clock = clock
        self._logs: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> SlidingLogRateLimiter:
        return cls(quota=config.quota, window_seconds=config.window_seconds)

    def _prune(self, log: list[float], now: float) -> None:
        del log[: bisect.bisect_right(log, now - self.window_seconds)]

    def admit(self, key: str) -> bool:
        """Record and admit a request for `key`, or reject it without recording."""
        now = self._clock()
        with self._lock:
            log = self._logs[key]
            self._prune(log, now)
            if len(log) >= self.quota:
                logger.info("Rate limit hit for %s (%d in %.0fs)", key, len(log), self.window_seconds)
                return False
            bisect.insort(log, now)
            return True

    def count(self, key: str) -> int:
        """Requests admitted for `key` within the current window."""
        now = self._clock()
        with self._lock:
            log = self._logs[key]
            self._prune(log, now)
            return len(log)

    def retry_after(self, key: str) -> float:
        """Seconds until the earliest logged request leaves the window (0 if not limited)."""
        now = self._clock()
        with self._lock:
            log = self._logs[key]
            self._prune(log, now)
            if len(log) < self.quota:
                return 0.0
            return max(0.0, log[0] + self.window_seconds - now)

    def reset(self) -> None:
        with self._lock:
            self._logs.clear()
