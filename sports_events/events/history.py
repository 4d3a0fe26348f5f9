"""
Bounded event history.

Count- and age-limited FIFO of recently published envelopes, used for
auditing and replay inspection. Append and eviction happen under one lock so
concurrent publishers can never grow it past `max_events`.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sports_events.events.envelope import EventEnvelope


@dataclass(frozen=True)
class EventHistoryEntry:
    envelope: EventEnvelope
    recorded_at: float  # clock() seconds

    def to_dict(self) -> dict:
        return {
            **self.envelope.to_dict(),
            "recorded_at": datetime.fromtimestamp(self.recorded_at, tz=timezone.utc).isoformat(),
        }


class EventHistory:
    """Thread-safe ring buffer with TTL eviction."""

    def __init__(
        self,
        max_events: int = 1000,
        ttl_seconds: float = 86400,
        clock: Callable[[], float] = time.time,
    ):
        if max_events < 1:
            raise ValueError("max_events must be >= 1")
        self.max_events = max_events
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: deque[EventHistoryEntry] = deque()
        self._identities: set[tuple[str, str, str]] = set()
        self._lock = threading.Lock()

    def _evict_locked(self, now: float) -> None:
        cutoff = now - self.ttl_seconds
        while self._entries and self._entries[0].recorded_at <= cutoff:
            old = self._entries.popleft()
            self._identities.discard(old.envelope.identity)
        while len(self._entries) > self.max_events:
            old = self._entries.popleft()
            self._identities.discard(old.envelope.identity)

    def append(self, envelope: EventEnvelope) -> bool:
        """Record a delivered envelope. False if its identity is already present."""
        with self._lock:
            now = self._clock()
            self._evict_locked(now)
            if envelope.identity in self._identities:
                return False
            self._entries.append(EventHistoryEntry(envelope=envelope, recorded_at=now))
            self._identities.add(envelope.identity)
            self._evict_locked(now)
            return True

    def contains(self, envelope: EventEnvelope) -> bool:
        with self._lock:
            self._evict_locked(self._clock())
            return envelope.identity in self._identities

    def entries(self, event_type: Optional[str] = None) -> list[EventHistoryEntry]:
        """Snapshot, oldest first, optionally filtered by event type."""
        with self._lock:
            self._evict_locked(self._clock())
            snapshot = list(self._entries)
        if event_type:
            snapshot = [e for e in snapshot if e.envelope.type == event_type]
        return snapshot

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._identities.clear()

    def __len__(self) -> int:
        with self._lock:
            self._evict_locked(self._clock())
            return len(self._entries)
