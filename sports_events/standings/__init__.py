"""
Tournament standings: pure calculation, persistence and queued recalculation.
"""

from sports_events.standings.calculator import (
    MatchScore,
    PointsRules,
    StandingRow,
    StandingsCalculator,
    compute_standings,
    validate_tournament_id,
)
from sports_events.standings.jobs import (
    STANDINGS_UPDATED,
    RecalculateStandingsJob,
    StandingsJobQueue,
    StandingsRecalcRequest,
)
from sports_events.standings.locks import KeyedLock
from sports_events.standings.repository import StandingsRepository

__all__ = [
    "MatchScore",
    "PointsRules",
    "StandingRow",
    "StandingsCalculator",
    "compute_standings",
    "validate_tournament_id",
    "STANDINGS_UPDATED",
    "RecalculateStandingsJob",
    "StandingsJobQueue",
    "StandingsRecalcRequest",
    "KeyedLock",
    "StandingsRepository",
]
