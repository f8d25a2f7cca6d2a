from __future__ import annotations

from cortex.services.sender_lock import SenderLock

SENDER = "573001112233"


class _FakeTime:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def clock(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_lock_is_exclusive_and_expires(redis_client):
    lock = SenderLock(redis_client, ttl_seconds=90)

    token = lock.acquire(SENDER)

    assert token is not None
    assert lock.acquire(SENDER) is None
    assert 0 < redis_client.ttl(lock.key(SENDER)) <= 90
    assert lock.acquire("573004445566") is not None
    assert lock.release(SENDER, token) is True
    assert lock.acquire(SENDER) is not None


def test_release_leaves_a_lock_taken_by_another_holder(redis_client):
    lock = SenderLock(redis_client)
    stale = lock.acquire(SENDER)
    redis_client.delete(lock.key(SENDER))
    current = lock.acquire(SENDER)

    assert lock.release(SENDER, stale) is False
    assert redis_client.get(lock.key(SENDER)) == current


def test_hold_polls_until_the_lock_frees(redis_client):
    fake = _FakeTime()

    def sleep_then_release(seconds: float) -> None:
        fake.sleep(seconds)
        if len(fake.sleeps) == 2:
            lock.release(SENDER, other)

    lock = SenderLock(redis_client, poll_seconds=0.5, clock=fake.clock, sleep=sleep_then_release)
    other = lock.acquire(SENDER)
    with lock.hold(SENDER, wait_seconds=5) as acquired:
        assert acquired is True
        assert redis_client.get(lock.key(SENDER)) not in (None, other)

    assert fake.sleeps == [0.5, 0.5]
    assert redis_client.get(lock.key(SENDER)) is None


def test_hold_gives_up_after_waiting(redis_client):
    fake = _FakeTime()
    lock = SenderLock(redis_client, poll_seconds=1.0, clock=fake.clock, sleep=fake.sleep)
    other = lock.acquire(SENDER)

    with lock.hold(SENDER, wait_seconds=3) as acquired:
        assert acquired is False

    assert fake.sleeps == [1.0, 1.0, 1.0]
    assert redis_client.get(lock.key(SENDER)) == other
