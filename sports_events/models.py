"""Database models using SQLModel."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MatchResult(SQLModel, table=True):
    """Final score of a completed match, as received from match.completed events."""

    __tablename__ = "match_results"

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(unique=True, index=True, description="Match service ID")
    tournament_id: int = Field(index=True)
    home_team_id: int = Field(index=True)
    away_team_id: int = Field(index=True)
    home_score: int
    away_score: int
    completed_at: datetime = Field(default_factory=_utc_now)
    processed_at: datetime = Field(default_factory=_utc_now)


class Standing(SQLModel, table=True):
    """One team's row in a tournament table. Rewritten wholesale on recalculation."""

    __tablename__ = "standings"
    __table_args__ = (UniqueConstraint("tournament_id", "team_id", name="uq_standings_tournament_team"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(index=True)
    team_id: int = Field(index=True)
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    points: int = 0
    position: int = 0
    updated_at: datetime = Field(default_factory=_utc_now)
