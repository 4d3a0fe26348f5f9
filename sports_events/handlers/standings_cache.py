"""Drops cached standings when a tournament's table may have changed."""

import logging

from sports_events.events.envelope import EventEnvelope
from sports_events.events.registry import EventHandler

logger = logging.getLogger("sports_events.handlers")


class StandingsCacheHandler(EventHandler):
    event_types = frozenset({"standings.updated", "match.completed"})

    def __init__(self, calculator):
        self.calculator = calculator

    @property
    def name(self) -> str:
        return "standings_cache"

    async def handle(self, event: EventEnvelope) -> None:
        tournament_id = event.payload.get("tournament_id")
        if not isinstance(tournament_id, int) or isinstance(tournament_id, bool) or tournament_id <= 0:
            logger.debug(f"[CACHE] {event.event_id} has no usable tournament_id, nothing to invalidate")
            return
        if self.calculator.invalidate(tournament_id):
            logger.info(f"[CACHE] Standings cache invalidated for tournament {tournament_id} ({event.type})")
