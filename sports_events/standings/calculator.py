"""
Tournament standings calculation.

compute_standings() is a pure function of the completed match results: the
same results always produce the same table (idempotent, replay-safe).

Ordering:
1. points (desc)
2. goal difference (desc)
3. goals for (desc)
4. team_id (asc), final deterministic tie-break

StandingsCalculator wraps it with persistence and a per-tournament lock so two
recalculations of the same tournament never interleave their writes, while
different tournaments proceed in parallel.
"""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from sports_events.errors import InvalidRecalcRequest
from sports_events.standings.locks import KeyedLock
from sports_events.telemetry.metrics import record_standings_recalc
from sports_events.utils.cache import TTLCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchScore:
    match_id: int
    tournament_id: int
    home_team_id: int
    away_team_id: int
    home_score: int
    away_score: int


@dataclass(frozen=True)
class PointsRules:
    win: int = 3
    draw: int = 1
    loss: int = 0


@dataclass
class StandingRow:
    tournament_id: int
    team_id: int
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    points: int = 0
    position: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def validate_tournament_id(tournament_id: object) -> int:
    # bool is an int subclass; True must not mean tournament 1
    if isinstance(tournament_id, bool) or not isinstance(tournament_id, int) or tournament_id <= 0:
        raise InvalidRecalcRequest(f"tournament_id must be a positive int, got {tournament_id!r}")
    return tournament_id


def _record(row: StandingRow, scored: int, conceded: int, rules: PointsRules) -> None:
    row.played += 1
    row.goals_for += scored
    row.goals_against += conceded
    if scored > conceded:
        row.won += 1
        row.points += rules.win
    elif scored < conceded:
        row.lost += 1
        row.points += rules.loss
    else:
        row.drawn += 1
        row.points += rules.draw


def compute_standings(
    tournament_id: int,
    matches: Iterable[MatchScore],
    rules: PointsRules = PointsRules(),
) -> list[StandingRow]:
    """Build the ordered standings table from completed matches."""
    rows: dict[int, StandingRow] = {}
    seen: set[int] = set()

    for match in sorted(matches, key=lambda m: m.match_id):
        if match.tournament_id != tournament_id:
            logger.warning(
                f"[STANDINGS] Match {match.match_id} belongs to tournament "
                f"{match.tournament_id}, not {tournament_id}; ignored"
            )
            continue
        if match.match_id in seen:
            continue
        seen.add(match.match_id)

        home = rows.setdefault(match.home_team_id, StandingRow(tournament_id, match.home_team_id))
        away = rows.setdefault(match.away_team_id, StandingRow(tournament_id, match.away_team_id))
        _record(home, match.home_score, match.away_score, rules)
        _record(away, match.away_score, match.home_score, rules)

    ordered = sorted(
        rows.values(),
        key=lambda r: (-r.points, -(r.goals_for - r.goals_against), -r.goals_for, r.team_id),
    )
    for position, row in enumerate(ordered, start=1):
        row.goal_difference = row.goals_for - row.goals_against
        row.position = position
    return ordered


class StandingsCalculator:
    """Recalculates and serves tournament standings."""

    def __init__(
        self,
        repository,
        locks: Optional[KeyedLock] = None,
        rules: PointsRules = PointsRules(),
        cache: Optional[TTLCache] = None,
    ):
        self.repository = repository
        self.locks = locks if locks is not None else KeyedLock()
        self.rules = rules
        self.cache = cache if cache is not None else TTLCache(ttl=1800)
        # Bumped on every invalidation; a read that started before a bump must not cache its rows
        self._generations: dict[int, int] = {}

    async def recalculate_for_tournament(self, tournament_id: int) -> list[StandingRow]:
        """
        Rebuild a tournament's standings from its persisted match results.

        Serialised per tournament id; safe to call concurrently for
        different ids.

        Raises:
            InvalidRecalcRequest: tournament_id not a positive int.
        """
        tournament_id = validate_tournament_id(tournament_id)
        start = time.monotonic()

        async with self.locks.hold(tournament_id):
            matches = await self.repository.completed_matches(tournament_id)
            rows = compute_standings(tournament_id, matches, self.rules)
            await self.repository.replace_standings(tournament_id, rows)

        self.invalidate(tournament_id)
        duration = time.monotonic() - start
        record_standings_recalc("success", duration)
        logger.info(
            f"[STANDINGS] Recalculated tournament {tournament_id}: "
            f"{len(matches)} matches, {len(rows)} teams in {duration * 1000:.0f}ms"
        )
        return rows

    async def get_tournament_standings(self, tournament_id: int) -> list[StandingRow]:
        tournament_id = validate_tournament_id(tournament_id)
        hit, rows = self.cache.get(tournament_id)
        if hit:
            return rows
        generation = self._generations.get(tournament_id, 0)
        rows = await self.repository.get_standings(tournament_id)
        if self._generations.get(tournament_id, 0) == generation:
            self.cache.set(tournament_id, rows)
        else:
            logger.debug(f"[STANDINGS] Tournament {tournament_id} invalidated during read, not caching")
        return rows

    def invalidate(self, tournament_id: int) -> bool:
        self._generations[tournament_id] = self._generations.get(tournament_id, 0) + 1
        return self.cache.invalidate(tournament_id)
