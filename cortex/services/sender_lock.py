"""Per-sender mutual exclusion across worker processes, backed by Redis."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

import redis

from cortex.utils.ids import new_id

logger = logging.getLogger(__name__)

KEY_PREFIX = "cortex:sender-lock:"


class SenderLock:
    """One in-flight pipeline run per sender.

    Each holder writes a random token with ``SET NX EX``; release deletes the
    key only while it still carries that token, so a lock that expired and was
    taken by another worker is left alone.
    """

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int = 120,
        poll_seconds: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.poll_seconds = poll_seconds
        self._clock = clock
        self._sleep = sleep

    @staticmethod
    def key(sender_id: str) -> str:
        return f"{KEY_PREFIX}{sender_id}"

    def acquire(self, sender_id: str) -> str | None:
        token = new_id()
        if self.client.set(self.key(sender_id), token, ex=self.ttl_seconds, nx=True):
            return token
        return None

    def release(self, sender_id: str, token: str) -> bool:
        key = self.key(sender_id)
        with self.client.pipeline() as pipe:
            try:
                pipe.watch(key)
                current = pipe.get(key)
                if isinstance(current, bytes):
                    current = current.decode()
                if current != token:
                    pipe.unwatch()
                    logger.warning(
                        "sender_lock.lost",
                        extra={"event": "sender_lock.lost", "sender_id": sender_id},
                    )
                    return False
                pipe.multi()
                pipe.delete(key)
                pipe.execute()
            except redis.WatchError:
                logger.warning("sender_lock.lost", extra={"event": "sender_lock.lost", "sender_id": sender_id})
                return False
        return True

    @contextmanager
    def hold(self, sender_id: str, wait_seconds: float = 0.0) -> Iterator[bool]:
        """Yield whether the lock was obtained, polling for up to ``wait_seconds``."""
        deadline = self._clock() + wait_seconds
        token = self.acquire(sender_id)
        while token is None and self._clock() < deadline:
            self._sleep(self.poll_seconds)
            token = self.acquire(sender_id)

        if token is None:
            logger.info("sender_lock.busy", extra={"event": "sender_lock.busy", "sender_id": sender_id})
        try:
            yield token is not None
        finally:
            if token is not None:
                self.release(sender_id, token)
