"""Shared fixtures and fakes for the event pipeline tests."""

import json
import uuid
from datetime import datetime, timezone

import pytest

from sports_events.events.dead_letter import DeadLetterStore
from sports_events.events.envelope import EventEnvelope
from sports_events.events.job import JobContext
from sports_events.events.ledger import ProcessedLedger
from sports_events.events.registry import EventDispatchRegistry, EventHandler
from sports_events.events.retry import RetryPolicy


async def no_sleep(seconds: float) -> None:
    """Drop-in for asyncio.sleep that returns immediately."""
    return None


class SleepRecorder:
    """Records requested sleep durations without waiting."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_raw(
    event_type: str = "match.completed",
    payload: dict = None,
    service: str = "match-service",
    event_id: str = None,
    correlation_id: str = "corr-1",
    **overrides,
) -> str:
    message = {
        "event_id": event_id or str(uuid.uuid4()),
        "event_type": event_type,
        "service": service,
        "version": "1.0",
        "correlation_id": correlation_id,
        "payload": payload if payload is not None else {"match_id": 1},
        "timestamp": datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc).isoformat(),
    }
    message.update(overrides)
    return json.dumps(message)


class RecordingHandler(EventHandler):
    """Handler that records calls and fails the first `fail_times` invocations."""

    def __init__(self, name: str, types=("match.completed",), fail_times: int = 0, accepts: bool = True, log=None):
        self._name = name
        self.types = frozenset(types)
        self.fail_times = fail_times
        self.accepts = accepts
        self.calls = 0
        self.seen: list[EventEnvelope] = []
        self.log = log if log is not None else []

    @property
    def name(self) -> str:
        return self._name

    def handled_types(self) -> frozenset:
        return self.types

    def can_handle(self, event_type: str) -> bool:
        return self.accepts and event_type in self.types

    async def handle(self, event: EventEnvelope) -> None:
        self.calls += 1
        self.log.append(self._name)
        if self.calls <= self.fail_times:
            raise RuntimeError(f"{self._name} boom #{self.calls}")
        self.seen.append(event)


@pytest.fixture
def registry():
    return EventDispatchRegistry()


@pytest.fixture
def dead_letters():
    return DeadLetterStore()


@pytest.fixture
def job_context(registry, dead_letters):
    return JobContext(
        registry=registry,
        default_retry_policy=RetryPolicy(max_attempts=3, delay_ms=1000),
        ledger=ProcessedLedger(),
        dead_letters=dead_letters,
        max_payload_size=1024 * 1024,
        sleep=no_sleep,
    )
