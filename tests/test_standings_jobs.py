"""Tests for queued standings recalculation jobs."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from sports_events.errors import InvalidRecalcRequest
from sports_events.events.dead_letter import REASON_RECALC_EXHAUSTED, DeadLetterStore
from sports_events.events.publisher import PublishResult, PublishStatus
from sports_events.events.retry import RetryPolicy
from sports_events.standings.calculator import StandingRow
from sports_events.standings.jobs import (
    STANDINGS_UPDATED,
    RecalculateStandingsJob,
    StandingsJobQueue,
    StandingsRecalcRequest,
)

from conftest import no_sleep


def _calculator(side_effect=None, rows=None) -> MagicMock:
    calculator = MagicMock()
    calculator.recalculate_for_tournament = AsyncMock(
        side_effect=side_effect,
        return_value=rows if rows is not None else [StandingRow(1, 10), StandingRow(1, 20)],
    )
    return calculator


def _publisher() -> MagicMock:
    publisher = MagicMock()
    publisher.publish_event = AsyncMock(return_value=PublishResult(PublishStatus.PUBLISHED))
    return publisher


class TestStandingsRecalcRequest:
    @pytest.mark.parametrize("bad", [0, -1, "7", None])
    def test_rejects_invalid_tournament_id(self, bad):
        with pytest.raises(InvalidRecalcRequest):
            StandingsRecalcRequest(bad)


class TestRecalculateStandingsJob:
    """Retry state and outcomes of one job."""

    @pytest.mark.asyncio
    async def test_success_publishes_standings_updated(self):
        calculator, publisher = _calculator(), _publisher()
        job = RecalculateStandingsJob(
            StandingsRecalcRequest(1, reason="match.completed:9", correlation_id="corr-9"),
            RetryPolicy(max_attempts=3, delay_ms=0),
        )

        assert await job.run(calculator, publisher, sleep=no_sleep)

        assert job.succeeded
        assert job.attempts == 1
        args, kwargs = publisher.publish_event.call_args
        assert args[0] == STANDINGS_UPDATED
        assert args[1]["tournament_id"] == 1
        assert args[1]["teams"] == 2
        assert kwargs["correlation_id"] == "corr-9"

    @pytest.mark.asyncio
    async def test_retries_transient_failure(self):
        calculator = _calculator(side_effect=[ConnectionError("db"), [StandingRow(1, 10)]])
        job = RecalculateStandingsJob(StandingsRecalcRequest(1), RetryPolicy(max_attempts=3, delay_ms=0))

        assert await job.run(calculator, sleep=no_sleep)
        assert job.attempts == 2

    @pytest.mark.asyncio
    async def test_exhaustion_parks_request(self):
        """After max_attempts the request is dead-lettered, not dropped."""
        calculator = _calculator(side_effect=ConnectionError("db down"))
        publisher = _publisher()
        dead_letters = DeadLetterStore()
        job = RecalculateStandingsJob(StandingsRecalcRequest(3), RetryPolicy(max_attempts=3, delay_ms=0))

        assert not await job.run(calculator, publisher, dead_letters, sleep=no_sleep)

        assert job.attempts == 3
        assert "db down" in job.last_error
        publisher.publish_event.assert_not_awaited()
        parked = dead_letters.entries(REASON_RECALC_EXHAUSTED)
        assert len(parked) == 1
        assert '"tournament_id": 3' in parked[0].raw

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_job(self):
        """Standings were written; a failed notification is only logged."""
        publisher = MagicMock()
        publisher.publish_event = AsyncMock(
            return_value=PublishResult(PublishStatus.FAILED, reason="channel_unavailable")
        )
        job = RecalculateStandingsJob(StandingsRecalcRequest(1), RetryPolicy(delay_ms=0))
        assert await job.run(_calculator(), publisher, sleep=no_sleep)


class TestStandingsJobQueue:
    """Queue hand-off."""

    @pytest.mark.asyncio
    async def test_enqueue_and_process(self):
        calculator = _calculator()
        queue = StandingsJobQueue(calculator, RetryPolicy(delay_ms=0), sleep=no_sleep)

        request = await queue.enqueue(4, reason="manual", correlation_id="c")
        assert request.tournament_id == 4
        assert queue.pending_count == 1

        job = await queue.process_next(timeout=0.1)
        assert job.succeeded
        assert queue.completed == 1
        assert queue.pending_count == 0
        calculator.recalculate_for_tournament.assert_awaited_once_with(4)

    @pytest.mark.asyncio
    async def test_enqueue_invalid_id(self):
        queue = StandingsJobQueue(_calculator(), RetryPolicy(delay_ms=0), sleep=no_sleep)
        with pytest.raises(InvalidRecalcRequest):
            await queue.enqueue(0)
        assert queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_process_next_timeout(self):
        queue = StandingsJobQueue(_calculator(), RetryPolicy(delay_ms=0), sleep=no_sleep)
        assert await queue.process_next(timeout=0.01) is None

    @pytest.mark.asyncio
    async def test_consumers_drain_queue(self):
        calculator = _calculator()
        queue = StandingsJobQueue(calculator, RetryPolicy(delay_ms=0), sleep=no_sleep)
        await queue.start(concurrency=2)
        try:
            for tournament_id in (1, 2, 3):
                await queue.enqueue(tournament_id)
            await queue.join()
        finally:
            await queue.stop()

        assert queue.completed == 3
        assert calculator.recalculate_for_tournament.await_count == 3

    @pytest.mark.asyncio
    async def test_failed_jobs_counted(self):
        queue = StandingsJobQueue(
            _calculator(side_effect=RuntimeError("boom")),
            RetryPolicy(max_attempts=2, delay_ms=0),
            dead_letters=DeadLetterStore(),
            sleep=no_sleep,
        )
        await queue.enqueue(1)
        await queue.process_next(timeout=0.1)
        assert queue.failed == 1
        assert len(queue.dead_letters) == 1
