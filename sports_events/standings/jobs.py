"""
Standings recalculation jobs.

RecalculateStandingsJob carries its own attempt counter and RetryPolicy.
StandingsJobQueue hands each enqueued request to exactly one consumer; the
calculator's per-tournament lock serialises requests for the same id.

On success a `standings.updated` event is published; on exhaustion the request
is parked in the dead-letter store (never silently dropped).
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sports_events.events.dead_letter import REASON_RECALC_EXHAUSTED, DeadLetter, DeadLetterStore
from sports_events.events.retry import RetryPolicy, run_with_retry
from sports_events.standings.calculator import StandingsCalculator, validate_tournament_id
from sports_events.telemetry.metrics import record_standings_recalc
from sports_events.telemetry.sentry import sentry_job_context

logger = logging.getLogger(__name__)

STANDINGS_UPDATED = "standings.updated"


@dataclass(frozen=True)
class StandingsRecalcRequest:
    tournament_id: int
    reason: str = "unspecified"
    correlation_id: Optional[str] = None
    requested_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def __post_init__(self):
        validate_tournament_id(self.tournament_id)


class RecalculateStandingsJob:
    """One queued recalculation with explicit retry state."""

    def __init__(self, request: StandingsRecalcRequest, policy: RetryPolicy):
        self.request = request
        self.policy = policy
        self.attempts = 0
        self.succeeded = False
        self.last_error: Optional[str] = None

    async def run(
        self,
        calculator: StandingsCalculator,
        publisher=None,
        dead_letters: Optional[DeadLetterStore] = None,
        sleep=asyncio.sleep,
    ) -> bool:
        tournament_id = self.request.tournament_id

        async def _recalculate():
            self.attempts += 1
            return await calculator.recalculate_for_tournament(tournament_id)

        with sentry_job_context("standings_recalc", tournament_id=tournament_id):
            outcome = await run_with_retry(
                _recalculate,
                self.policy,
                label=f"recalculate standings {tournament_id}",
                sleep=sleep,
            )

        if not outcome.ok:
            self.last_error = f"{type(outcome.error).__name__}: {outcome.error}"
            record_standings_recalc("failure")
            logger.error(
                f"[STANDINGS] Recalculation for tournament {tournament_id} failed after "
                f"{self.attempts} attempts: {self.last_error}"
            )
            if dead_letters is not None:
                dead_letters.park(DeadLetter(
                    reason=REASON_RECALC_EXHAUSTED,
                    event_type=STANDINGS_UPDATED,
                    handler=type(self).__name__,
                    error=self.last_error,
                    attempts=self.attempts,
                    raw=json.dumps({"tournament_id": tournament_id, "reason": self.request.reason}),
                ))
            return False

        self.succeeded = True
        rows = outcome.value
        if publisher is not None:
            result = await publisher.publish_event(
                STANDINGS_UPDATED,
                {
                    "tournament_id": tournament_id,
                    "teams": len(rows),
                    "reason": self.request.reason,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                },
                correlation_id=self.request.correlation_id,
            )
            if not result.ok:
                logger.warning(
                    f"[STANDINGS] standings.updated for tournament {tournament_id} "
                    f"not published: {result.status.value} ({result.reason})"
                )
        return True


class StandingsJobQueue:
    """In-process queue of recalculation requests with N consumers."""

    def __init__(
        self,
        calculator: StandingsCalculator,
        policy: RetryPolicy,
        *,
        publisher=None,
        dead_letters: Optional[DeadLetterStore] = None,
        sleep=asyncio.sleep,
    ):
        self.calculator = calculator
        self.policy = policy
        self.publisher = publisher
        self.dead_letters = dead_letters
        self._sleep = sleep
        self._queue: asyncio.Queue = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []
        self.completed = 0
        self.failed = 0

    async def enqueue(
        self,
        tournament_id: int,
        reason: str = "unspecified",
        correlation_id: Optional[str] = None,
    ) -> StandingsRecalcRequest:
        """
        Queue a recalculation.

        Raises:
            InvalidRecalcRequest: tournament_id not a positive int.
        """
        request = StandingsRecalcRequest(tournament_id, reason=reason, correlation_id=correlation_id)
        await self._queue.put(RecalculateStandingsJob(request, self.policy))
        logger.info(f"[STANDINGS] Queued recalculation for tournament {tournament_id} ({reason})")
        return request

    async def process_next(self, timeout: Optional[float] = None) -> Optional[RecalculateStandingsJob]:
        """Run one queued job. None if nothing arrived within `timeout`."""
        try:
            if timeout is None:
                job = await self._queue.get()
            else:
                job = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        try:
            ok = await job.run(self.calculator, self.publisher, self.dead_letters, sleep=self._sleep)
            if ok:
                self.completed += 1
            else:
                self.failed += 1
        finally:
            self._queue.task_done()
        return job

    async def _consume(self, name: str) -> None:
        logger.info(f"[STANDINGS] {name} started")
        while True:
            await self.process_next()

    async def start(self, concurrency: int = 2) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._consume(f"standings-worker-{i}"))
            for i in range(max(1, concurrency))
        ]

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()


__all__ = [
    "RecalculateStandingsJob",
    "StandingsJobQueue",
    "StandingsRecalcRequest",
    "STANDINGS_UPDATED",
]
