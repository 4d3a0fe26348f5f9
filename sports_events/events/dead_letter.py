"""Parked units of work awaiting operator inspection.

Nothing that exhausts its retry budget is dropped: it lands here with the
reason, the last error and (for malformed input) the raw message.
"""

import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sports_events.telemetry.metrics import record_dead_letter

REASON_MALFORMED = "malformed"
REASON_REJECTED_SOURCE = "rejected_source"
REASON_HANDLER_EXHAUSTED = "handler_exhausted"
REASON_RECALC_EXHAUSTED = "recalc_exhausted"
REASON_DELIVERY_EXHAUSTED = "delivery_exhausted"


@dataclass(frozen=True)
class DeadLetter:
    reason: str
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    handler: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    raw: Optional[str] = None
    parked_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return asdict(self)


class DeadLetterStore:
    """Bounded FIFO of parked failures (oldest evicted first)."""

    def __init__(self, max_entries: int = 1000):
        self._entries: deque[DeadLetter] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def park(self, letter: DeadLetter) -> None:
        with self._lock:
            self._entries.append(letter)
        record_dead_letter(letter.reason)

    def entries(self, reason: Optional[str] = None) -> list[DeadLetter]:
        with self._lock:
            snapshot = list(self._entries)
        if reason:
            snapshot = [e for e in snapshot if e.reason == reason]
        return snapshot

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
