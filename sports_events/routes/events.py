"""Event pipeline inspection (token-protected)."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from sports_events.responses import Pagination, paginated, success
from sports_events.security import require_service_token

router = APIRouter(prefix="/events", tags=["events"], dependencies=[Depends(require_service_token)])


@router.get("/history")
async def event_history(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    event_type: Optional[str] = Query(None),
):
    """Published events, newest first."""
    history = request.app.state.container.history
    entries = list(reversed(history.entries(event_type)))
    start = (page - 1) * per_page
    items = [e.to_dict() for e in entries[start:start + per_page]]
    return paginated(items, Pagination.build(page, per_page, len(entries), len(items)))


@router.get("/dead-letters")
async def dead_letters(request: Request, reason: Optional[str] = Query(None)):
    """Parked failures awaiting operator action."""
    store = request.app.state.container.dead_letters
    return success(
        [letter.to_dict() for letter in store.entries(reason)],
        message="Dead letters retrieved successfully",
    )
