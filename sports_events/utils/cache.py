"""Keyed TTL cache.

Usage:
    _cache = TTLCache(ttl=60)

    hit, data = _cache.get(key)
    if hit:
        return data

    data = expensive_query()
    _cache.set(key, data)

    _cache.invalidate(key)
"""

import threading
import time
from typing import Any, Callable, Hashable


class TTLCache:
    """TTL-based keyed cache. Expired entries are dropped lazily on read."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time, max_entries: int = 10_000):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._data: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> tuple[bool, Any]:
        """Return (hit, data)."""
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return False, None
            stored_at, data = entry
            if self._clock() - stored_at >= self.ttl:
                del self._data[key]
                return False, None
            return True, data

    def set(self, key: Hashable, data: Any) -> None:
        with self._lock:
            if key not in self._data and len(self._data) >= self.max_entries:
                # Drop the oldest entry (dicts keep insertion order)
                self._data.pop(next(iter(self._data)))
            self._data[key] = (self._clock(), data)

    def invalidate(self, key: Hashable) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
