"""
Pipeline telemetry: Prometheus metrics and Sentry error tracking.
"""

from sports_events.telemetry.metrics import (
    get_metrics_text,
    record_auth_validation,
    record_dead_letter,
    record_handler_attempt,
    record_history_size,
    record_job,
    record_publish,
    record_standings_recalc,
)
from sports_events.telemetry.sentry import (
    capture_message,
    init_sentry,
    is_sentry_enabled,
    sentry_job_context,
)

__all__ = [
    "get_metrics_text",
    "record_auth_validation",
    "record_dead_letter",
    "record_handler_attempt",
    "record_history_size",
    "record_job",
    "record_publish",
    "record_standings_recalc",
    "capture_message",
    "init_sentry",
    "is_sentry_enabled",
    "sentry_job_context",
]
