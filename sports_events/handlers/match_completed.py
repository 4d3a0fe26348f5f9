"""
Handler for match.completed events.

Flow:
1. Validate payload (missing / invalid fields → warning, no-op)
2. Upsert the match result by match_id (redelivery-safe)
3. Queue a standings recalculation for the tournament

Database errors propagate so the job retries this handler.
"""

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, PositiveInt, StrictInt, ValidationError, field_validator

from sports_events.events.envelope import EventEnvelope
from sports_events.events.registry import EventHandler
from sports_events.standings.calculator import MatchScore

logger = logging.getLogger("sports_events.handlers")

MATCH_COMPLETED = "match.completed"


class MatchCompletedPayload(BaseModel):
    match_id: PositiveInt
    tournament_id: PositiveInt
    home_team_id: PositiveInt
    away_team_id: PositiveInt
    home_score: StrictInt
    away_score: StrictInt
    completed_at: Optional[datetime] = None

    @field_validator("home_score", "away_score")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("score must be >= 0")
        return value


class MatchCompletedHandler(EventHandler):
    event_types = frozenset({MATCH_COMPLETED})

    def __init__(self, repository, standings_queue):
        self.repository = repository
        self.standings_queue = standings_queue

    @property
    def name(self) -> str:
        return "match_completed"

    async def handle(self, event: EventEnvelope) -> None:
        try:
            payload = MatchCompletedPayload.model_validate(event.payload_dict())
        except ValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            logger.warning(f"[MATCH_COMPLETED] {event.event_id} invalid payload fields {fields}, skipping")
            return

        if payload.home_team_id == payload.away_team_id:
            logger.warning(
                f"[MATCH_COMPLETED] Match {payload.match_id} has the same team on both sides, skipping"
            )
            return

        score = MatchScore(
            match_id=payload.match_id,
            tournament_id=payload.tournament_id,
            home_team_id=payload.home_team_id,
            away_team_id=payload.away_team_id,
            home_score=payload.home_score,
            away_score=payload.away_score,
        )
        created = await self.repository.upsert_match_result(score, payload.completed_at)
        logger.info(
            f"[MATCH_COMPLETED] Match {payload.match_id} result "
            f"{'stored' if created else 'updated'} "
            f"({payload.home_score}-{payload.away_score}, tournament={payload.tournament_id})"
        )

        await self.standings_queue.enqueue(
            payload.tournament_id,
            reason=f"match.completed:{payload.match_id}",
            correlation_id=event.correlation_id,
        )
