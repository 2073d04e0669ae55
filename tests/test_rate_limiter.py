from __future__ import annotations

import pytest

from deck_capture.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_first_acquire_is_immediate() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2.0, clock=clock, sleep=clock.sleep)
    assert limiter.acquire() == 0.0
    assert clock.sleeps == []


def test_back_to_back_acquires_are_spaced_by_min_interval() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2.0, clock=clock, sleep=clock.sleep)
    grants = []
    for _ in range(5):
        limiter.acquire()
        grants.append(clock.now)
    gaps = [b - a for a, b in zip(grants, grants[1:])]
    assert all(gap >= 0.5 - 1e-9 for gap in gaps)
    assert clock.sleeps == pytest.approx([0.5, 0.5, 0.5, 0.5])


def test_idle_time_does_not_accumulate_burst_credit() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2.0, clock=clock, sleep=clock.sleep)
    limiter.acquire()
    clock.now += 10.0
    assert limiter.acquire() == 0.0
    # Only one grant was banked by the idle period; the next must wait again.
    assert limiter.acquire() == pytest.approx(0.5)


def test_partial_elapsed_time_shortens_the_wait() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2.0, clock=clock, sleep=clock.sleep)
    limiter.acquire()
    clock.now += 0.2
    assert limiter.acquire() == pytest.approx(0.3)


def test_sleep_that_returns_early_still_spaces_grants() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2.0, clock=clock, sleep=lambda _s: None)
    limiter.acquire()
    limiter.acquire()
    limiter.acquire()
    assert limiter._last_grant == pytest.approx(101.0)


@pytest.mark.parametrize("rate", [0, -1.0])
def test_non_positive_rate_is_rejected(rate: float) -> None:
    with pytest.raises(ValueError):
        RateLimiter(rate)
