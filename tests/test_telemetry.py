"""Tests for telemetry helpers and the TTL cache."""

import pytest

from sports_events.telemetry import get_metrics_text, record_dead_letter, record_publish
from sports_events.telemetry.sentry import capture_message, scrub_sensitive_data, sentry_job_context
from sports_events.utils.cache import TTLCache


class TestSentryScrubbing:
    def test_authorization_redacted(self):
        event = {"request": {"headers": {"Authorization": "Bearer secret", "Accept": "application/json"}}}
        scrubbed = scrub_sensitive_data(event, {})
        assert scrubbed["request"]["headers"]["Authorization"] == "[REDACTED]"
        assert scrubbed["request"]["headers"]["Accept"] == "application/json"

    def test_body_dropped(self):
        event = {"request": {"headers": {}, "data": {"password": "x"}}}
        assert "data" not in scrub_sensitive_data(event, {})["request"]

    def test_event_without_request_untouched(self):
        event = {"message": "hello"}
        assert scrub_sensitive_data(event, {}) == {"message": "hello"}


class TestSentryDisabled:
    """Without a DSN every helper is a no-op."""

    def test_job_context_reraises(self):
        with pytest.raises(RuntimeError):
            with sentry_job_context("standings_recalc", tournament_id=1):
                raise RuntimeError("boom")

    def test_capture_message_noop(self):
        capture_message("Malformed event received", level="error", reason="invalid JSON")


class TestMetrics:
    def test_exposition_contains_recorded_series(self):
        record_publish("published", attempts=1)
        record_dead_letter("malformed")
        content, content_type = get_metrics_text()
        text = content.decode("utf-8")
        assert 'events_published_total{status="published"}' in text
        assert 'events_dead_lettered_total{reason="malformed"}' in text
        assert content_type.startswith("text/plain")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestTTLCache:
    def test_hit_then_expire(self):
        clock = FakeClock()
        cache = TTLCache(ttl=10, clock=clock)
        cache.set("k", [1])
        assert cache.get("k") == (True, [1])
        clock.now = 10
        assert cache.get("k") == (False, None)

    def test_cached_none_is_a_hit(self):
        cache = TTLCache(ttl=10)
        cache.set("k", None)
        assert cache.get("k") == (True, None)

    def test_invalidate(self):
        cache = TTLCache(ttl=10)
        cache.set("k", 1)
        assert cache.invalidate("k")
        assert not cache.invalidate("k")

    def test_max_entries_evicts_oldest(self):
        cache = TTLCache(ttl=10, max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert len(cache) == 2
        assert cache.get("a") == (False, None)
        assert cache.get("c") == (True, 3)
