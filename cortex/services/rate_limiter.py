"""Per-sender sliding-window rate limiter guarding the pipeline entry point."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window log of accepted message timestamps per sender.

    Windows are pruned lazily on access. State is process-local, so in a
    multi-worker deployment each worker enforces its own ceiling.
    """

    def __init__(
        self,
        max_messages: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        max_tracked_senders: int = 10000,
    ) -> None:
        self.max_messages = max_messages
        self.window_seconds = window_seconds
        self._clock = clock
        self._max_tracked = max_tracked_senders
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def _prune(self, hits: deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

    def _purge_idle(self, now: float) -> None:
        for sender_id in [key for key, hits in self._hits.items() if not hits or hits[-1] <= now - self.window_seconds]:
            del self._hits[sender_id]

    def is_limited(self, sender_id: str) -> bool:
        """Record a message from ``sender_id`` unless the window is full."""
        now = self._clock()
        with self._lock:
            if sender_id not in self._hits and len(self._hits) >= self._max_tracked:
                self._purge_idle(now)
            hits = self._hits.setdefault(sender_id, deque())
            self._prune(hits, now)
            if len(hits) >= self.max_messages:
                limited = True
            else:
                hits.append(now)
                limited = False

        if limited:
            logger.warning(
                "rate_limit.exceeded",
                extra={"event": "rate_limit.exceeded", "sender_id": sender_id, "limit": self.max_messages},
            )
        return limited

    def remaining(self, sender_id: str) -> int:
        now = self._clock()
        with self._lock:
            hits = self._hits.get(sender_id)
            if not hits:
                return self.max_messages
            self._prune(hits, now)
            return max(0, self.max_messages - len(hits))

    def clear(self, sender_id: str | None = None) -> None:
        with self._lock:
            if sender_id is None:
                self._hits.clear()
            else:
                self._hits.pop(sender_id, None)
