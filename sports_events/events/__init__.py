"""
Event propagation: envelopes, publishing, history, dispatch and processing.

Usage:
    from sports_events.events import EventEnvelope, EventPublisher

    result = await publisher.publish_event("match.completed", {"match_id": 10, ...})
    if not result.ok:
        ...  # caller decides whether a failed publish is fatal
"""

from sports_events.events.broadcast import BroadcastListener
from sports_events.events.channel import (
    Delivery,
    EventChannel,
    InMemoryEventChannel,
    RedisEventChannel,
    build_channel,
)
from sports_events.events.consumer import EventWorker, WorkerPool
from sports_events.events.dead_letter import DeadLetter, DeadLetterStore
from sports_events.events.envelope import EventEnvelope, decode_envelope
from sports_events.events.history import EventHistory, EventHistoryEntry
from sports_events.events.job import (
    HandlerOutcome,
    HandlerStatus,
    JobContext,
    JobResult,
    JobStatus,
    ProcessEventJob,
)
from sports_events.events.ledger import ProcessedLedger
from sports_events.events.publisher import EventPublisher, PublishResult, PublishStatus
from sports_events.events.registry import EventDispatchRegistry, EventHandler, build_registry
from sports_events.events.retry import RetryPolicy, run_with_retry

__all__ = [
    "BroadcastListener",
    "Delivery",
    "EventChannel",
    "InMemoryEventChannel",
    "RedisEventChannel",
    "build_channel",
    "EventWorker",
    "WorkerPool",
    "DeadLetter",
    "DeadLetterStore",
    "EventEnvelope",
    "decode_envelope",
    "EventHistory",
    "EventHistoryEntry",
    "HandlerOutcome",
    "HandlerStatus",
    "JobContext",
    "JobResult",
    "JobStatus",
    "ProcessEventJob",
    "ProcessedLedger",
    "EventPublisher",
    "PublishResult",
    "PublishStatus",
    "EventDispatchRegistry",
    "EventHandler",
    "build_registry",
    "RetryPolicy",
    "run_with_retry",
]
