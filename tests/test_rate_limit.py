"""Tests for the sliding-log rate limiter."""

from concurrent.futures import ThreadPoolExecutor

from ghostcell.config import RateLimitConfig
from ghostcell.proxy.rate_limit import SlidingLogRateLimiter


class _FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_sixty_first_request_in_a_minute_is_rejected() -> None:
    clock = _FakeClock()
    limiter = SlidingLogRateLimiter(quota=60, window_seconds=60.0, clock=clock)

    for _ in range(60):
        assert limiter.admit("alice") is True
        clock.now += 0.5
    assert limiter.admit("alice") is False
    assert limiter.count("alice") == 60


def test_readmitted_once_the_oldest_request_leaves_the_window() -> None:
    clock = _FakeClock()
    limiter = SlidingLogRateLimiter(quota=60, window_seconds=60.0, clock=clock)
    for _ in range(60):
        limiter.admit("alice")

    clock.now += 59.9
    assert limiter.admit("alice") is False
    assert abs(limiter.retry_after("alice") - 0.1) < 1e-6

    clock.now += 0.2
    assert limiter.admit("alice") is True
    assert limiter.count("alice") == 1


def test_rejected_requests_are_not_recorded() -> None:
    clock = _FakeClock()
    limiter = SlidingLogRateLimiter(quota=2, window_seconds=10.0, clock=clock)
    limiter.admit("alice")
    clock.now += 5
    limiter.admit("alice")
    for _ in range(5):
        assert limiter.admit("alice") is False

    clock.now += 5
    assert limiter.admit("alice") is True


def test_users_are_limited_independently() -> None:
    limiter = SlidingLogRateLimiter(quota=1, window_seconds=60.0, clock=_FakeClock())
    assert limiter.admit("alice") is True
    assert limiter.admit("alice") is False
    assert limiter.admit("bob") is True
    assert limiter.retry_after("carol") == 0.0


def test_concurrent_admissions_never_exceed_the_quota() -> None:
    limiter = SlidingLogRateLimiter(quota=60, window_seconds=60.0)
    with ThreadPoolExecutor(max_workers=16) as pool:
        admitted = list(pool.map(lambda _: limiter.admit("alice"), range(200)))
    assert admitted.count(True) == 60


def test_from_config_and_reset() -> None:
    limiter = SlidingLogRateLimiter.from_config(RateLimitConfig(quota=3, window_seconds=1.0))
    assert (limiter.quota, limiter.window_seconds) == (3, 1.0)
    limiter.admit("alice")
    limiter.reset()
    assert limiter.count("alice") == 0
