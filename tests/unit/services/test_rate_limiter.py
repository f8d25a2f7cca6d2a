from __future__ import annotations

from cortex.services.rate_limiter import RateLimiter


class ManualClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_eleventh_message_in_window_is_limited():
    clock = ManualClock()
    limiter = RateLimiter(max_messages=10, window_seconds=60, clock=clock)

    results = []
    for _ in range(11):
        results.append(limiter.is_limited("573001112233"))
        clock.now += 1

    assert results[:10] == [False] * 10
    assert results[10] is True


def test_window_slides_and_limited_calls_are_not_counted():
    clock = ManualClock()
    limiter = RateLimiter(max_messages=2, window_seconds=60, clock=clock)

    assert limiter.is_limited("a") is False
    clock.now = 30
    assert limiter.is_limited("a") is False
    clock.now = 45
    assert limiter.is_limited("a") is True
    assert limiter.remaining("a") == 0

    clock.now = 61
    assert limiter.remaining("a") == 1
    assert limiter.is_limited("a") is False


def test_senders_are_limited_independently_and_can_be_cleared():
    limiter = RateLimiter(max_messages=1, window_seconds=60, clock=ManualClock())

    assert limiter.is_limited("a") is False
    assert limiter.is_limited("a") is True
    assert limiter.is_limited("b") is False

    limiter.clear("a")
    assert limiter.is_limited("a") is False
    limiter.clear()
    assert limiter.remaining("b") == 1
