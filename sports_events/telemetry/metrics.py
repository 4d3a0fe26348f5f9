"""
Prometheus metrics for the event pipeline.

Design principles:
- Low cardinality (controlled labels)
- Best-effort (never block main flow)

ALLOWED LABELS (bounded sets):
- status:   publish / job outcome enum values (max ~6)
- handler:  registered handler names (max ~10)
- outcome:  "success", "failure", "skipped"
- reason:   dead-letter reasons (max ~5)

FORBIDDEN AS LABELS: event_id, correlation_id, tournament_id, team ids,
tokens, raw payloads, error messages. Use logs for those.
"""

import logging

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# =============================================================================
# PUBLISHING
# =============================================================================

events_published_total = Counter(
    "events_published_total",
    "Publish calls by final status",
    ["status"],
)

events_publish_attempts_total = Counter(
    "events_publish_attempts_total",
    "Channel push attempts (including retries)",
)

events_history_size = Gauge(
    "events_history_size",
    "Entries currently held in the bounded event history",
)

# =============================================================================
# CONSUMPTION
# =============================================================================

events_processed_total = Counter(
    "events_processed_total",
    "ProcessEventJob invocations by final status",
    ["status"],
)

event_handler_attempts_total = Counter(
    "event_handler_attempts_total",
    "Handler invocations by handler and outcome",
    ["handler", "outcome"],
)

events_dead_lettered_total = Counter(
    "events_dead_lettered_total",
    "Units of work parked for operator inspection",
    ["reason"],
)

# =============================================================================
# STANDINGS
# =============================================================================

standings_recalc_duration_seconds = Histogram(
    "standings_recalc_duration_seconds",
    "Duration of a full tournament standings recalculation",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

standings_recalc_total = Counter(
    "standings_recalc_total",
    "Standings recalculation jobs by outcome",
    ["outcome"],
)

# =============================================================================
# AUTH
# =============================================================================

auth_validations_total = Counter(
    "auth_validations_total",
    "Inter-service token validations by outcome",
    ["outcome"],  # authorized | unauthorized | unavailable | cache_hit
)


def _safe(fn, *args, **kwargs) -> None:
    try:
        fn(*args, **kwargs)
    except Exception as e:
        logger.debug(f"[METRICS] Failed to record metric: {e}")


def record_publish(status: str, attempts: int = 0) -> None:
    _safe(events_published_total.labels(status=status).inc)
    if attempts:
        _safe(events_publish_attempts_total.inc, attempts)


def record_history_size(size: int) -> None:
    _safe(events_history_size.set, size)


def record_job(status: str) -> None:
    _safe(events_processed_total.labels(status=status).inc)


def record_handler_attempt(handler: str, outcome: str) -> None:
    _safe(event_handler_attempts_total.labels(handler=handler, outcome=outcome).inc)


def record_dead_letter(reason: str) -> None:
    _safe(events_dead_lettered_total.labels(reason=reason).inc)


def record_standings_recalc(outcome: str, duration_s: float = None) -> None:
    _safe(standings_recalc_total.labels(outcome=outcome).inc)
    if duration_s is not None:
        _safe(standings_recalc_duration_seconds.observe, duration_s)


def record_auth_validation(outcome: str) -> None:
    _safe(auth_validations_total.labels(outcome=outcome).inc)


def get_metrics_text() -> tuple[bytes, str]:
    """Prometheus exposition payload and content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
