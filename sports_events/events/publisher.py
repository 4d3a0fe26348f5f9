"""
Event publisher.

Design:
- Disabled publishing (EVENTS_ENABLED=false) is a no-op: SKIPPED result, the
  channel is never contacted, history is never touched.
- Transient channel failures are retried per RetryPolicy; exhaustion returns a
  FAILED result carrying the last error. The caller decides if that is fatal.
- History is appended only AFTER a successful push, so it never records an
  event that was not delivered.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from sports_events.errors import ChannelUnavailableError
from sports_events.events.channel import EventChannel
from sports_events.events.envelope import EventEnvelope
from sports_events.events.history import EventHistory
from sports_events.events.retry import RetryPolicy, run_with_retry
from sports_events.telemetry.metrics import record_history_size, record_publish

logger = logging.getLogger("sports_events.publisher")


class PublishStatus(str, Enum):
    PUBLISHED = "published"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class PublishResult:
    status: PublishStatus
    envelope: Optional[EventEnvelope] = None
    attempts: int = 0
    reason: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status == PublishStatus.PUBLISHED

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "event_id": self.envelope.event_id if self.envelope else None,
            "event_type": self.envelope.type if self.envelope else None,
            "attempts": self.attempts,
            "reason": self.reason,
            "error": str(self.error) if self.error else None,
        }


class EventPublisher:
    """Pushes envelopes to the channel and records them in history."""

    def __init__(
        self,
        channel: EventChannel,
        history: EventHistory,
        retry_policy: RetryPolicy,
        *,
        enabled: bool = True,
        service_name: str = "unknown",
        version: str = "1.0",
    ):
        self.channel = channel
        self.history = history
        self.retry_policy = retry_policy
        self.enabled = enabled
        self.service_name = service_name
        self.version = version

    async def publish(self, envelope: EventEnvelope) -> PublishResult:
        """Publish one envelope. Never raises for channel failures."""
        if not envelope.type or not envelope.type.strip():
            raise ValueError("envelope.type must be non-empty")

        if not self.enabled:
            logger.debug(f"[PUBLISHER] Publishing disabled, skipping {envelope!r}")
            record_publish(PublishStatus.SKIPPED.value)
            return PublishResult(PublishStatus.SKIPPED, envelope=envelope, reason="disabled")

        if self.history.contains(envelope):
            logger.warning(f"[PUBLISHER] {envelope!r} already published, skipping duplicate")
            record_publish(PublishStatus.SKIPPED.value)
            return PublishResult(PublishStatus.SKIPPED, envelope=envelope, reason="duplicate")

        message = envelope.to_json()

        async def _push() -> int:
            return await self.channel.push(message)

        outcome = await run_with_retry(
            _push,
            self.retry_policy,
            label=f"publish {envelope.type} to {self.channel.name}",
            retry_on=(ChannelUnavailableError, OSError, TimeoutError),
        )

        if not outcome.ok:
            logger.error(
                f"[PUBLISHER] Failed to publish {envelope!r} to {self.channel.name} "
                f"after {outcome.attempts} attempts: {outcome.error}"
            )
            record_publish(PublishStatus.FAILED.value, attempts=outcome.attempts)
            return PublishResult(
                PublishStatus.FAILED,
                envelope=envelope,
                attempts=outcome.attempts,
                reason="channel_unavailable",
                error=outcome.error,
            )

        if outcome.value == 0:
            logger.warning(f"[PUBLISHER] No receivers for {envelope!r} on {self.channel.name}")

        if not self.history.append(envelope):
            # Lost a race with a concurrent publisher of the same envelope
            logger.warning(f"[PUBLISHER] {envelope!r} already in history after push")
        record_history_size(len(self.history))
        record_publish(PublishStatus.PUBLISHED.value, attempts=outcome.attempts)

        logger.info(
            f"[PUBLISHER] Published {envelope!r} to {self.channel.name} "
            f"(attempts={outcome.attempts}, bytes={len(message)})"
        )
        return PublishResult(PublishStatus.PUBLISHED, envelope=envelope, attempts=outcome.attempts)

    def make_envelope(
        self,
        event_type: str,
        data: Mapping[str, Any],
        correlation_id: Optional[str] = None,
    ) -> EventEnvelope:
        """Stamp service name and schema version onto a new envelope."""
        return EventEnvelope(
            type=event_type,
            payload=data,
            version=self.version,
            service=self.service_name,
            correlation_id=correlation_id or "",
        )

    async def publish_event(
        self,
        event_type: str,
        data: Mapping[str, Any],
        correlation_id: Optional[str] = None,
    ) -> PublishResult:
        return await self.publish(self.make_envelope(event_type, data, correlation_id))

    async def publish_batch(self, specs: list[dict]) -> list[PublishResult]:
        """
        Publish several events, each independently.

        Args:
            specs: [{"event_type": str, "data": dict}, ...]
        """
        results = []
        for index, spec in enumerate(specs):
            if "event_type" not in spec or "data" not in spec:
                logger.warning(f"[PUBLISHER] Batch entry {index} missing event_type or data")
                results.append(
                    PublishResult(PublishStatus.FAILED, reason="missing event_type or data")
                )
                continue
            try:
                envelope = self.make_envelope(spec["event_type"], spec["data"], spec.get("correlation_id"))
            except (TypeError, ValueError) as e:
                results.append(PublishResult(PublishStatus.FAILED, reason="invalid_event", error=e))
                continue
            results.append(await self.publish(envelope))
        return results

    async def is_healthy(self) -> bool:
        try:
            return await self.channel.ping()
        except Exception as e:
            logger.error(f"[PUBLISHER] Channel health check failed: {e}")
            return False
