"""Persistence for match results and standings (SQLModel over async SQLAlchemy)."""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select

from sports_events.models import MatchResult, Standing
from sports_events.standings.calculator import MatchScore, StandingRow

logger = logging.getLogger(__name__)


class StandingsRepository:
    """
    Usage:
        repo = StandingsRepository(session_factory)
        await repo.upsert_match_result(score, completed_at)
        matches = await repo.completed_matches(5)
        await repo.replace_standings(5, rows)
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def upsert_match_result(self, score: MatchScore, completed_at: Optional[datetime] = None) -> bool:
        """Insert or update by match_id. Returns True when a new row was created."""
        now = datetime.now(timezone.utc)
        async with self.session_factory() as session:
            result = await session.execute(
                select(MatchResult).where(MatchResult.match_id == score.match_id)
            )
            row = result.scalars().first()
            created = row is None
            if created:
                row = MatchResult(match_id=score.match_id)
            row.tournament_id = score.tournament_id
            row.home_team_id = score.home_team_id
            row.away_team_id = score.away_team_id
            row.home_score = score.home_score
            row.away_score = score.away_score
            row.completed_at = completed_at or now
            row.processed_at = now
            session.add(row)
            await session.commit()
        return created

    async def completed_matches(self, tournament_id: int) -> list[MatchScore]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(MatchResult)
                .where(MatchResult.tournament_id == tournament_id)
                .order_by(MatchResult.match_id)
            )
            return [
                MatchScore(
                    match_id=r.match_id,
                    tournament_id=r.tournament_id,
                    home_team_id=r.home_team_id,
                    away_team_id=r.away_team_id,
                    home_score=r.home_score,
                    away_score=r.away_score,
                )
                for r in result.scalars().all()
            ]

    async def replace_standings(self, tournament_id: int, rows: list[StandingRow]) -> None:
        """Delete and rewrite a tournament's standings in one transaction."""
        now = datetime.now(timezone.utc)
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(delete(Standing).where(Standing.tournament_id == tournament_id))
                session.add_all(
                    Standing(**row.to_dict(), updated_at=now) for row in rows
                )

    async def get_standings(self, tournament_id: int) -> list[StandingRow]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Standing)
                .where(Standing.tournament_id == tournament_id)
                .order_by(Standing.position)
            )
            return [
                StandingRow(
                    tournament_id=s.tournament_id,
                    team_id=s.team_id,
                    played=s.played,
                    won=s.won,
                    drawn=s.drawn,
                    lost=s.lost,
                    goals_for=s.goals_for,
                    goals_against=s.goals_against,
                    goal_difference=s.goal_difference,
                    points=s.points,
                    position=s.position,
                )
                for s in result.scalars().all()
            ]
