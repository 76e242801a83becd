# src/taskpix/cache/memory_cache.py

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from cachetools import TTLCache

DEFAULT_MAX_ENTRIES = 50
DEFAULT_TTL_SECONDS = 24 * 60 * 60


class _ImageTTLCache(TTLCache):
    """TTLCache that remembers which keys it pushed out for capacity."""

    def __init__(self, maxsize: int, ttl: float, timer: Callable[[], float]) -> None:
        super().__init__(maxsize=maxsize, ttl=ttl, timer=timer)
        self.evicted: list[str] = []

    def popitem(self):
        key, value = super().popitem()
        self.evicted.append(key)
        return key, value


class MemoryImageCache:
    """
    Bounded in-process LRU with TTL.

    Reads refresh recency; an insert at capacity evicts the least recently
    used entry. The TTL runs from insertion.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_entries = max(1, int(max_entries))
        self.ttl_seconds = float(ttl_seconds)
        self._entries = _ImageTTLCache(self.max_entries, self.ttl_seconds, clock)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, data_uri: str) -> str | None:
        """Insert or overwrite; returns the evicted key, if any."""
        with self._lock:
            self._entries.evicted.clear()
            self._entries[key] = data_uri
            evicted = self._entries.evicted[0] if self._entries.evicted else None
            self._entries.evicted.clear()
        return evicted

    def discard(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries.keys())
