"""
Sentry error tracking for the event pipeline.

What reaches Sentry:
- unhandled request exceptions (FastAPI integration) and ERROR log records
- exceptions escaping a standings recalculation (sentry_job_context)
- parked events: malformed messages and handlers that exhausted retries
  (capture_message, one issue per reason, not per event)

Bearer tokens never leave the process: the Authorization header is redacted,
request bodies are dropped and event payloads are never attached.
"""

import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from sports_events import __version__

logger = logging.getLogger(__name__)

_enabled = False

REDACTED_HEADERS = frozenset({"authorization", "x-api-key", "cookie", "set-cookie"})


def scrub_sensitive_data(event: dict, hint: dict) -> Optional[dict]:
    """before_send hook: redact auth headers, drop bodies."""
    request = event.get("request")
    if not isinstance(request, dict):
        return event

    headers = request.get("headers")
    if isinstance(headers, dict):
        request["headers"] = {
            name: "[REDACTED]" if name.lower() in REDACTED_HEADERS else value
            for name, value in headers.items()
        }
    request.pop("data", None)
    return event


def init_sentry(dsn: str, traces_sample_rate: float = 0.05, service_name: str = "") -> bool:
    """Start the SDK once per process. False when no DSN is configured."""
    global _enabled

    if _enabled:
        return True
    if not dsn:
        logger.info("[SENTRY] SENTRY_DSN not set, error tracking disabled")
        return False

    environment = os.getenv("ENVIRONMENT", "development")
    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=f"sports-events@{__version__}",
        server_name=service_name or None,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        before_send=scrub_sensitive_data,
    )
    if service_name:
        sentry_sdk.set_tag("service", service_name)

    _enabled = True
    logger.info(f"[SENTRY] Enabled: env={environment} traces={traces_sample_rate}")
    return True


def is_sentry_enabled() -> bool:
    return _enabled


@contextmanager
def sentry_job_context(job_name: str, **tags) -> Iterator[None]:
    """
    Isolated scope for one background job. Exceptions escaping the block are
    captured with the job's tags and re-raised.

    Usage:
        with sentry_job_context("standings_recalc", tournament_id=5):
            ...
    """
    if not _enabled:
        yield
        return

    with sentry_sdk.new_scope() as scope:
        scope.set_tag("job", job_name)
        for key, value in tags.items():
            scope.set_tag(key, value)
        try:
            yield
        except Exception as e:
            sentry_sdk.capture_exception(e)
            raise


def capture_message(message: str, level: str = "info", **extra) -> None:
    """Report a pipeline condition that is not an exception (e.g. a parked event)."""
    if not _enabled:
        return

    with sentry_sdk.new_scope() as scope:
        # Group by message text, not by the per-event extras
        scope.fingerprint = ["sports-events", message]
        for key, value in extra.items():
            scope.set_extra(key, value)
        sentry_sdk.capture_message(message, level=level)
