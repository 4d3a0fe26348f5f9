"""Tournament standings: public read, token-protected recalculation."""

import logging

from fastapi import APIRouter, Depends, Request

from sports_events.auth.token_validator import AuthContext
from sports_events.errors import InvalidRecalcRequest
from sports_events.responses import ERROR_VALIDATION, ApiError, success
from sports_events.security import require_service_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/standings", tags=["standings"])


@router.get("/{tournament_id}")
async def get_standings(tournament_id: int, request: Request):
    calculator = request.app.state.container.calculator
    try:
        rows = await calculator.get_tournament_standings(tournament_id)
    except InvalidRecalcRequest as e:
        raise ApiError(422, str(e), ERROR_VALIDATION) from e
    return success([r.to_dict() for r in rows], message="Standings retrieved successfully")


@router.post("/{tournament_id}/recalculate", status_code=202)
async def recalculate_standings(
    tournament_id: int,
    request: Request,
    auth: AuthContext = Depends(require_service_token),
):
    """Queue a recalculation. Returns 202 once queued, not once computed."""
    queue = request.app.state.container.standings_queue
    try:
        queued = await queue.enqueue(
            tournament_id,
            reason=f"manual:{auth.user_id}",
            correlation_id=request.headers.get("X-Correlation-ID"),
        )
    except InvalidRecalcRequest as e:
        raise ApiError(422, str(e), ERROR_VALIDATION) from e

    logger.info(f"[STANDINGS] Manual recalculation of tournament {tournament_id} requested by {auth.user_id}")
    return success(
        {
            "tournament_id": queued.tournament_id,
            "reason": queued.reason,
            "requested_at": queued.requested_at,
        },
        message="Recalculation queued",
        status_code=202,
    )
