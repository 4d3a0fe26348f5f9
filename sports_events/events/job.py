"""
ProcessEventJob: one consumed channel message, one unit of work.

Flow:
1. Decode the raw message. Malformed → FAILED_MALFORMED immediately, zero
   retries, raw logged and parked (retrying a parse cannot succeed).
   A message redelivered more than max_deliveries times (its worker kept
   dying mid-job) → DELIVERY_EXHAUSTED, parked.
2. Source allow-list. Disallowed producer → REJECTED, parked, no retry.
3. Resolve handlers (registration order). None → NO_HANDLERS, not a fault.
4. Invoke each handler independently with its own retry budget. One handler
   failing never prevents the next from running.
5. Any handler exhausting its budget → PARTIALLY_FAILED, surfaced via ERROR
   log, Sentry and the dead-letter store. Handlers that succeeded are recorded
   in the ledger and skipped if the same event is delivered again.

Retry bookkeeping is explicit state on the job (handler_attempts), not hidden
transport behaviour.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from sports_events.errors import MalformedEventError
from sports_events.events.dead_letter import (
    REASON_DELIVERY_EXHAUSTED,
    REASON_HANDLER_EXHAUSTED,
    REASON_MALFORMED,
    REASON_REJECTED_SOURCE,
    DeadLetter,
    DeadLetterStore,
)
from sports_events.events.envelope import EventEnvelope, decode_envelope, raw_preview
from sports_events.events.ledger import ProcessedLedger
from sports_events.events.registry import EventDispatchRegistry, EventHandler
from sports_events.events.retry import RetryPolicy, run_with_retry
from sports_events.telemetry.metrics import record_handler_attempt, record_job
from sports_events.telemetry.sentry import capture_message

logger = logging.getLogger("sports_events.worker")


class JobStatus(str, Enum):
    SUCCEEDED = "succeeded"
    NO_HANDLERS = "no_handlers"
    PARTIALLY_FAILED = "partially_failed"
    FAILED_MALFORMED = "failed_malformed"
    REJECTED = "rejected"
    DELIVERY_EXHAUSTED = "delivery_exhausted"

    @property
    def is_terminal_failure(self) -> bool:
        return self in (JobStatus.FAILED_MALFORMED, JobStatus.REJECTED, JobStatus.DELIVERY_EXHAUSTED)


class HandlerStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ALREADY_DONE = "already_done"


@dataclass
class HandlerOutcome:
    handler: str
    status: HandlerStatus
    attempts: int = 0
    error: Optional[str] = None


@dataclass
class JobResult:
    status: JobStatus
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    outcomes: list[HandlerOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def retry_attempts(self) -> int:
        """Invocations beyond the first, summed over handlers."""
        return sum(max(0, o.attempts - 1) for o in self.outcomes)

    @property
    def failed_handlers(self) -> list[str]:
        return [o.handler for o in self.outcomes if o.status == HandlerStatus.FAILED]

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "event_id": self.event_id,
            "event_type": self.event_type,
            "error": self.error,
            "handlers": [
                {"handler": o.handler, "status": o.status.value, "attempts": o.attempts, "error": o.error}
                for o in self.outcomes
            ],
        }


@dataclass
class JobContext:
    """Process-wide collaborators shared by every ProcessEventJob."""

    registry: EventDispatchRegistry
    default_retry_policy: RetryPolicy
    ledger: ProcessedLedger
    dead_letters: DeadLetterStore
    max_payload_size: Optional[int] = None
    allowed_sources: frozenset[str] = frozenset()
    max_deliveries: int = 0  # 0 = unlimited redeliveries
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep


class ProcessEventJob:
    """Processes exactly one raw channel message."""

    def __init__(self, raw: Any, context: JobContext, delivery_attempt: int = 1):
        self.raw = raw
        self.context = context
        self.delivery_attempt = delivery_attempt
        self.handler_attempts: dict[str, int] = {}
        self.envelope: Optional[EventEnvelope] = None

    async def run(self) -> JobResult:
        result = await self._run()
        record_job(result.status.value)
        return result

    async def _run(self) -> JobResult:
        ctx = self.context

        try:
            envelope = decode_envelope(self.raw, max_size=ctx.max_payload_size)
        except MalformedEventError as e:
            return self._fail_malformed(e)
        self.envelope = envelope

        if ctx.max_deliveries and self.delivery_attempt > ctx.max_deliveries:
            return self._fail_redelivered(envelope)

        if ctx.allowed_sources and envelope.service not in ctx.allowed_sources:
            logger.error(
                f"[WORKER] Rejecting {envelope!r}: source '{envelope.service}' not in allow-list"
            )
            ctx.dead_letters.park(DeadLetter(
                reason=REASON_REJECTED_SOURCE,
                event_id=envelope.event_id,
                event_type=envelope.type,
                error=f"source {envelope.service} not allowed",
                raw=raw_preview(self.raw),
            ))
            return JobResult(
                JobStatus.REJECTED,
                event_id=envelope.event_id,
                event_type=envelope.type,
                error="source not allowed",
            )

        handlers = ctx.registry.resolve(envelope.type)
        if not handlers:
            logger.info(f"[WORKER] No handlers for {envelope.type} ({envelope.event_id}), completing")
            return JobResult(JobStatus.NO_HANDLERS, event_id=envelope.event_id, event_type=envelope.type)

        logger.info(
            f"[WORKER] Processing {envelope!r} from {envelope.service} "
            f"(delivery={self.delivery_attempt}, handlers={[h.name for h in handlers]})"
        )

        outcomes = []
        for handler in handlers:
            # can_handle is the authority, checked again at invocation time
            if not handler.can_handle(envelope.type):
                continue
            outcomes.append(await self._invoke(handler, envelope))

        failed = [o for o in outcomes if o.status == HandlerStatus.FAILED]
        if failed:
            names = [o.handler for o in failed]
            logger.error(
                f"[WORKER] {envelope!r} partially failed: handlers {names} exhausted retries"
            )
            capture_message(
                "Event handler exhausted retries",
                level="error",
                event_id=envelope.event_id,
                event_type=envelope.type,
                handlers=names,
            )
            return JobResult(
                JobStatus.PARTIALLY_FAILED,
                event_id=envelope.event_id,
                event_type=envelope.type,
                outcomes=outcomes,
                error=f"{len(failed)} handler(s) failed",
            )

        logger.info(f"[WORKER] Processed {envelope!r} successfully")
        return JobResult(
            JobStatus.SUCCEEDED,
            event_id=envelope.event_id,
            event_type=envelope.type,
            outcomes=outcomes,
        )

    async def _invoke(self, handler: EventHandler, envelope: EventEnvelope) -> HandlerOutcome:
        ctx = self.context

        if ctx.ledger.is_done(envelope.event_id, handler.name):
            logger.info(f"[WORKER] {handler.name} already completed {envelope.event_id}, skipping")
            record_handler_attempt(handler.name, "skipped")
            return HandlerOutcome(handler.name, HandlerStatus.ALREADY_DONE)

        policy = handler.retry_policy or ctx.default_retry_policy

        async def _call() -> None:
            self.handler_attempts[handler.name] = self.handler_attempts.get(handler.name, 0) + 1
            await handler.handle(envelope)

        def _on_failure(attempt: int, error: BaseException) -> None:
            record_handler_attempt(handler.name, "failure")
            logger.error(
                f"[WORKER] Handler {handler.name} failed on {envelope.event_id} "
                f"(attempt {attempt}/{policy.max_attempts}): {type(error).__name__}: {error}"
            )

        outcome = await run_with_retry(
            _call,
            policy,
            label=f"{handler.name}({envelope.type})",
            on_failure=_on_failure,
            sleep=ctx.sleep,
        )
        attempts = self.handler_attempts.get(handler.name, 0)

        if outcome.ok:
            record_handler_attempt(handler.name, "success")
            ctx.ledger.mark_done(envelope.event_id, handler.name)
            return HandlerOutcome(handler.name, HandlerStatus.SUCCEEDED, attempts=attempts)

        error = f"{type(outcome.error).__name__}: {outcome.error}"
        ctx.dead_letters.park(DeadLetter(
            reason=REASON_HANDLER_EXHAUSTED,
            event_id=envelope.event_id,
            event_type=envelope.type,
            handler=handler.name,
            error=error,
            attempts=attempts,
            raw=envelope.to_json(),
        ))
        return HandlerOutcome(handler.name, HandlerStatus.FAILED, attempts=attempts, error=error)

    def _fail_malformed(self, error: MalformedEventError) -> JobResult:
        preview = raw_preview(self.raw)
        logger.error(f"[WORKER] Malformed event, failing permanently: {error.reason} raw={preview}")
        self.context.dead_letters.park(DeadLetter(
            reason=REASON_MALFORMED,
            error=error.reason,
            attempts=0,
            raw=preview,
        ))
        capture_message("Malformed event received", level="error", reason=error.reason)
        return JobResult(JobStatus.FAILED_MALFORMED, error=error.reason)

    def _fail_redelivered(self, envelope: EventEnvelope) -> JobResult:
        """A message that keeps coming back (worker crashed each time) is parked."""
        ctx = self.context
        logger.error(
            f"[WORKER] {envelope!r} delivered {self.delivery_attempt} times "
            f"(max {ctx.max_deliveries}), parking"
        )
        ctx.dead_letters.park(DeadLetter(
            reason=REASON_DELIVERY_EXHAUSTED,
            event_id=envelope.event_id,
            event_type=envelope.type,
            error=f"delivered {self.delivery_attempt} times",
            attempts=self.delivery_attempt,
            raw=envelope.to_json(),
        ))
        capture_message("Event redelivery limit reached", level="error", event_id=envelope.event_id)
        return JobResult(
            JobStatus.DELIVERY_EXHAUSTED,
            event_id=envelope.event_id,
            event_type=envelope.type,
            error="redelivery limit reached",
        )
