"""Core routes: health, metrics.

Auth per-endpoint:
- /health: public
- /metrics: public (scraped from inside the cluster)
"""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from sports_events.telemetry import get_metrics_text

router = APIRouter(tags=["core"])


class HealthResponse(BaseModel):
    status: str
    service: str
    events_enabled: bool
    channel: str
    channel_healthy: bool
    workers_running: int
    events_processed: int
    history_size: int
    dead_letters: int
    standings_pending: int


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint. 'degraded' when the channel does not answer a ping."""
    container = request.app.state.container
    channel_healthy = await container.publisher.is_healthy()
    return HealthResponse(
        status="ok" if channel_healthy else "degraded",
        service=container.settings.SERVICE_NAME,
        events_enabled=container.publisher.enabled,
        channel=container.channel.name,
        channel_healthy=channel_healthy,
        workers_running=container.workers.running,
        events_processed=container.workers.processed,
        history_size=len(container.history),
        dead_letters=len(container.dead_letters),
        standings_pending=container.standings_queue.pending_count,
    )


@router.get("/metrics")
async def prometheus_metrics():
    """
    Prometheus metrics endpoint.

    Exposes publish outcomes, job and handler outcomes, dead letters,
    history size, standings recalculation latency and auth validations.
    """
    content, content_type = get_metrics_text()
    return PlainTextResponse(content=content, media_type=content_type)
