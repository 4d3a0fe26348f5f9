"""Record of handlers that already completed an event.

Consulted on redelivery so a handler that succeeded is not run again while
its siblings are retried.
"""

import threading
from collections import OrderedDict


class ProcessedLedger:
    """Bounded map event_id -> completed handler names (oldest event evicted)."""

    def __init__(self, max_events: int = 10_000):
        self.max_events = max_events
        self._done: OrderedDict[str, set[str]] = OrderedDict()
        self._lock = threading.Lock()

    def is_done(self, event_id: str, handler_name: str) -> bool:
        with self._lock:
            return handler_name in self._done.get(event_id, ())

    def mark_done(self, event_id: str, handler_name: str) -> None:
        with self._lock:
            handlers = self._done.setdefault(event_id, set())
            handlers.add(handler_name)
            self._done.move_to_end(event_id)
            while len(self._done) > self.max_events:
                self._done.popitem(last=False)

    def completed(self, event_id: str) -> set[str]:
        with self._lock:
            return set(self._done.get(event_id, ()))
