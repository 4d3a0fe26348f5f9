"""Tests for ProcessEventJob.

Verifies:
1. Handler retries are bounded by the policy and counted explicitly
2. One failing handler never prevents the others from running
3. Malformed messages fail permanently with zero retries
4. Handlers that already succeeded are skipped on redelivery
"""

import json
from unittest.mock import patch

import pytest

from sports_events.events.dead_letter import (
    REASON_HANDLER_EXHAUSTED,
    REASON_MALFORMED,
    REASON_REJECTED_SOURCE,
)
from sports_events.events.job import HandlerStatus, JobStatus, ProcessEventJob
from sports_events.events.retry import RetryPolicy

from conftest import RecordingHandler, make_raw


class TestHandlerRetries:
    """Per-handler retry budget."""

    @pytest.mark.asyncio
    async def test_fails_then_succeeds(self, job_context, registry):
        """Two failures then success: 3 invocations, SUCCEEDED."""
        handler = RecordingHandler("flaky", fail_times=2)
        registry.register(handler)

        job = ProcessEventJob(make_raw(), job_context)
        result = await job.run()

        assert result.status == JobStatus.SUCCEEDED
        assert handler.calls == 3
        assert job.handler_attempts["flaky"] == 3
        assert result.retry_attempts == 2

    @pytest.mark.asyncio
    async def test_always_failing_handler(self, job_context, registry, dead_letters):
        """Exactly max_attempts invocations, then PARTIALLY_FAILED and parked."""
        handler = RecordingHandler("broken", fail_times=100)
        registry.register(handler)

        result = await ProcessEventJob(make_raw(), job_context).run()

        assert result.status == JobStatus.PARTIALLY_FAILED
        assert handler.calls == 3
        assert result.failed_handlers == ["broken"]
        parked = dead_letters.entries(REASON_HANDLER_EXHAUSTED)
        assert len(parked) == 1
        assert parked[0].handler == "broken"
        assert parked[0].attempts == 3
        assert json.loads(parked[0].raw)["event_type"] == "match.completed"

    @pytest.mark.asyncio
    async def test_handler_policy_overrides_default(self, job_context, registry):
        """A handler-level RetryPolicy wins over the job default."""
        handler = RecordingHandler("strict", fail_times=100)
        handler.retry_policy = RetryPolicy(max_attempts=1, delay_ms=0)
        registry.register(handler)

        await ProcessEventJob(make_raw(), job_context).run()

        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_partial_failure_reported_to_sentry(self, job_context, registry):
        """Exhausted handlers are surfaced through capture_message."""
        registry.register(RecordingHandler("broken", fail_times=100))

        with patch("sports_events.events.job.capture_message") as capture:
            await ProcessEventJob(make_raw(), job_context).run()

        capture.assert_called_once()
        assert capture.call_args.kwargs["handlers"] == ["broken"]


class TestHandlerIsolation:
    """Handlers of one event are independent."""

    @pytest.mark.asyncio
    async def test_failure_does_not_block_later_handlers(self, job_context, registry):
        """H1 exhausts its budget; H2 still runs."""
        log = []
        broken = RecordingHandler("h1", fail_times=100, log=log)
        healthy = RecordingHandler("h2", log=log)
        registry.register(broken)
        registry.register(healthy)

        result = await ProcessEventJob(make_raw(), job_context).run()

        assert result.status == JobStatus.PARTIALLY_FAILED
        assert healthy.calls == 1
        assert log == ["h1", "h1", "h1", "h2"]
        statuses = {o.handler: o.status for o in result.outcomes}
        assert statuses == {"h1": HandlerStatus.FAILED, "h2": HandlerStatus.SUCCEEDED}

    @pytest.mark.asyncio
    async def test_refusing_handler_skipped(self, job_context, registry):
        """can_handle false: H1 never invoked, H2 invoked."""
        h1 = RecordingHandler("h1", accepts=False)
        h2 = RecordingHandler("h2")
        registry.register(h1, ["match.completed"])
        registry.register(h2, ["match.completed"])

        result = await ProcessEventJob(make_raw(), job_context).run()

        assert result.status == JobStatus.SUCCEEDED
        assert h1.calls == 0
        assert h2.calls == 1

    @pytest.mark.asyncio
    async def test_handlers_receive_same_envelope(self, job_context, registry):
        """Every handler sees the decoded envelope, in order."""
        h1, h2 = RecordingHandler("h1"), RecordingHandler("h2")
        registry.register(h1)
        registry.register(h2)

        await ProcessEventJob(make_raw(payload={"match_id": 42}), job_context).run()

        assert h1.seen[0] is h2.seen[0]
        assert h1.seen[0].payload["match_id"] == 42


class TestMalformedAndRejected:
    """Permanent failures."""

    @pytest.mark.asyncio
    async def test_malformed_zero_retries(self, job_context, registry, dead_letters):
        """Undecodable input: no handler runs, nothing retried, raw parked."""
        handler = RecordingHandler("h")
        registry.register(handler)

        job = ProcessEventJob("{definitely not json", job_context)
        result = await job.run()

        assert result.status == JobStatus.FAILED_MALFORMED
        assert result.status.is_terminal_failure
        assert result.retry_attempts == 0
        assert job.handler_attempts == {}
        assert handler.calls == 0
        parked = dead_letters.entries(REASON_MALFORMED)
        assert parked[0].raw == "{definitely not json"
        assert parked[0].attempts == 0

    @pytest.mark.asyncio
    async def test_missing_field_is_malformed(self, job_context, registry):
        message = json.loads(make_raw())
        del message["event_type"]
        result = await ProcessEventJob(json.dumps(message), job_context).run()
        assert result.status == JobStatus.FAILED_MALFORMED

    @pytest.mark.asyncio
    async def test_disallowed_source_rejected(self, job_context, registry, dead_letters):
        """Producers outside the allow-list are parked, not processed."""
        handler = RecordingHandler("h")
        registry.register(handler)
        job_context.allowed_sources = frozenset({"tournament-service"})

        result = await ProcessEventJob(make_raw(service="rogue-service"), job_context).run()

        assert result.status == JobStatus.REJECTED
        assert handler.calls == 0
        assert len(dead_letters.entries(REASON_REJECTED_SOURCE)) == 1

    @pytest.mark.asyncio
    async def test_no_handlers_completes(self, job_context):
        """An event nobody handles is not a failure."""
        result = await ProcessEventJob(make_raw(event_type="tournament.created"), job_context).run()
        assert result.status == JobStatus.NO_HANDLERS


class TestRedelivery:
    """At-least-once delivery with the processed ledger."""

    @pytest.mark.asyncio
    async def test_succeeded_handler_skipped_on_redelivery(self, job_context, registry):
        """Redelivering a partially failed event only reruns the failed handler."""
        done = RecordingHandler("done")
        broken = RecordingHandler("broken", fail_times=3)
        registry.register(done)
        registry.register(broken)
        raw = make_raw()

        first = await ProcessEventJob(raw, job_context).run()
        second = await ProcessEventJob(raw, job_context, delivery_attempt=2).run()

        assert first.status == JobStatus.PARTIALLY_FAILED
        assert second.status == JobStatus.SUCCEEDED
        assert done.calls == 1
        assert broken.calls == 4
        statuses = {o.handler: o.status for o in second.outcomes}
        assert statuses["done"] == HandlerStatus.ALREADY_DONE
