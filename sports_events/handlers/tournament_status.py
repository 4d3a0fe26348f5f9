"""Handler for tournament.status.changed: final recalculation on completion."""

import logging

from sports_events.errors import InvalidRecalcRequest
from sports_events.events.envelope import EventEnvelope
from sports_events.events.registry import EventHandler
from sports_events.standings.calculator import validate_tournament_id

logger = logging.getLogger("sports_events.handlers")

TOURNAMENT_STATUS_CHANGED = "tournament.status.changed"
FINAL_STATUSES = frozenset({"completed"})


class TournamentStatusChangedHandler(EventHandler):
    event_types = frozenset({TOURNAMENT_STATUS_CHANGED})

    def __init__(self, standings_queue):
        self.standings_queue = standings_queue

    @property
    def name(self) -> str:
        return "tournament_status_changed"

    async def handle(self, event: EventEnvelope) -> None:
        payload = event.payload
        # Producers send either "status" or "new_status"
        status = str(payload.get("new_status") or payload.get("status") or "").lower()
        if status not in FINAL_STATUSES:
            logger.debug(f"[TOURNAMENT] {event.event_id} status '{status}' needs no recalculation")
            return

        try:
            tournament_id = validate_tournament_id(payload.get("tournament_id"))
        except InvalidRecalcRequest as e:
            logger.warning(f"[TOURNAMENT] {event.event_id} {e}, skipping")
            return

        await self.standings_queue.enqueue(
            tournament_id,
            reason=f"tournament.{status}",
            correlation_id=event.correlation_id,
        )
