"""Time-bounded read-through cache over the business settings store."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from cortex.core.exceptions import DatabaseError

logger = logging.getLogger(__name__)


class SettingsCache:
    """Per-process key -> (value, expires_at) map in front of a settings store.

    A store error serves the caller's default and is not cached, so the next
    read retries the store.
    """

    def __init__(
        self,
        store,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[1] > now:
                return entry[0]

        try:
            value = self._store.read(key)
        except DatabaseError as exc:
            logger.warning(
                "settings.read_failed",
                extra={"event": "settings.read_failed", "key": key, "error": str(exc)},
            )
            return default

        if value is None:
            return default

        with self._lock:
            self._entries[key] = (value, now + self._ttl)
        return value

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
