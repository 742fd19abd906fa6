"""Bounded cache for detecting redelivered inbound messages."""

from __future__ import annotations

import math
import threading
import time
from collections import OrderedDict

DEFAULT_TTL_MS = 10 * 60_000
DEFAULT_MAX_SIZE = 2000


def _now_ms() -> int:
    return int(time.time() * 1000)


class DedupCache:
    """
    Time and size bounded "seen recently" set.

    Entries are kept in recency order: every sighting moves the key to the
    most-recent end, so size-based eviction drops the least recently seen
    keys first. A ``ttl_ms`` of 0 disables age expiry; a ``max_size`` of 0
    evicts everything on each miss.

    The store lives in memory only and starts empty after a restart.
    """

    def __init__(self, ttl_ms: int = DEFAULT_TTL_MS, max_size: int = DEFAULT_MAX_SIZE) -> None:
        self.ttl_ms = max(0, ttl_ms)
        self.max_size = max(0, math.floor(max_size))
        self._entries: OrderedDict[str, int] = OrderedDict()
        self._lock = threading.Lock()

    def check(self, key: str | None, now: int | None = None) -> bool:
        """Return True if ``key`` was seen within the TTL; record it either way."""
        if not key:
            return False

        if now is None:
            now = _now_ms()

        with self._lock:
            seen_at = self._entries.get(key)
            if seen_at is not None and (self.ttl_ms <= 0 or now - seen_at < self.ttl_ms):
                self._touch(key, now)
                return True

            self._touch(key, now)
            self._prune(now)
            return False

    def _touch(self, key: str, now: int) -> None:
        self._entries.pop(key, None)
        self._entries[key] = now

    def _prune(self, now: int) -> None:
        if self.ttl_ms > 0:
            cutoff = now - self.ttl_ms
            expired = [k for k, ts in self._entries.items() if ts < cutoff]
            for k in expired:
                del self._entries[k]

        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
