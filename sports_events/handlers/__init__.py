"""
Concrete event handlers, wired by key through EVENTS_HANDLERS:

    match_completed            -> MatchCompletedHandler
    tournament_status_changed  -> TournamentStatusChangedHandler
    standings_cache            -> StandingsCacheHandler
"""

from sports_events.handlers.match_completed import MatchCompletedHandler
from sports_events.handlers.standings_cache import StandingsCacheHandler
from sports_events.handlers.tournament_status import TournamentStatusChangedHandler

__all__ = [
    "MatchCompletedHandler",
    "StandingsCacheHandler",
    "TournamentStatusChangedHandler",
]
