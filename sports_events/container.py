"""
Process-wide wiring.

Everything is built once from Settings and passed explicitly: no component
reaches for a module-level singleton, so tests can build a container over an
in-memory channel and an in-memory SQLite database.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from sports_events.auth.token_validator import CrossServiceTokenValidator
from sports_events.config import Settings, get_settings
from sports_events.database import build_engine, build_session_factory, close_db, init_db
from sports_events.events.broadcast import BroadcastListener
from sports_events.events.channel import EventChannel, build_channel
from sports_events.events.consumer import WorkerPool
from sports_events.events.dead_letter import DeadLetterStore
from sports_events.events.history import EventHistory
from sports_events.events.job import JobContext
from sports_events.events.ledger import ProcessedLedger
from sports_events.events.publisher import EventPublisher
from sports_events.events.registry import EventDispatchRegistry, build_registry
from sports_events.events.retry import RetryPolicy
from sports_events.handlers import (
    MatchCompletedHandler,
    StandingsCacheHandler,
    TournamentStatusChangedHandler,
)
from sports_events.standings.calculator import PointsRules, StandingsCalculator
from sports_events.standings.jobs import StandingsJobQueue
from sports_events.standings.locks import KeyedLock
from sports_events.standings.repository import StandingsRepository
from sports_events.utils.cache import TTLCache

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    engine: AsyncEngine
    channel: EventChannel
    history: EventHistory
    publisher: EventPublisher
    registry: EventDispatchRegistry
    ledger: ProcessedLedger
    dead_letters: DeadLetterStore
    job_context: JobContext
    workers: WorkerPool
    repository: StandingsRepository
    calculator: StandingsCalculator
    standings_queue: StandingsJobQueue
    token_validator: CrossServiceTokenValidator
    broadcast: Optional[BroadcastListener] = None

    async def start(self, with_workers: bool = True) -> None:
        await init_db(self.engine)
        await self.standings_queue.start()
        if self.broadcast is not None:
            await self.broadcast.start()
        if with_workers:
            await self.workers.start()

    async def shutdown(self) -> None:
        await self.workers.stop()
        if self.broadcast is not None:
            await self.broadcast.stop()
        await self.standings_queue.stop()
        await self.channel.close()
        await self.token_validator.aclose()
        await close_db(self.engine)


def build_container(
    settings: Optional[Settings] = None,
    *,
    channel: Optional[EventChannel] = None,
    token_validator: Optional[CrossServiceTokenValidator] = None,
) -> Container:
    settings = settings or get_settings()

    channel = channel if channel is not None else build_channel(
        settings.REDIS_URL,
        settings.EVENTS_DEFAULT_CHANNEL,
        group=settings.EVENTS_CONSUMER_GROUP,
        claim_idle_ms=settings.EVENTS_CLAIM_IDLE_MS,
    )
    history = EventHistory(
        max_events=settings.EVENTS_HISTORY_MAX,
        ttl_seconds=settings.EVENTS_HISTORY_TTL,
    )
    publisher = EventPublisher(
        channel,
        history,
        RetryPolicy(
            max_attempts=settings.EVENTS_RETRY_MAX_ATTEMPTS,
            delay_ms=settings.EVENTS_RETRY_DELAY_MS,
            backoff_multiplier=settings.EVENTS_RETRY_BACKOFF_MULTIPLIER,
        ),
        enabled=settings.EVENTS_ENABLED,
        service_name=settings.SERVICE_NAME,
        version=settings.EVENTS_VERSION,
    )

    engine = build_engine(settings.DATABASE_URL)
    repository = StandingsRepository(build_session_factory(engine))
    calculator = StandingsCalculator(
        repository,
        locks=KeyedLock(),
        rules=PointsRules(
            win=settings.STANDINGS_POINTS_WIN,
            draw=settings.STANDINGS_POINTS_DRAW,
            loss=settings.STANDINGS_POINTS_LOSS,
        ),
        cache=TTLCache(ttl=settings.STANDINGS_CACHE_TTL),
    )

    dead_letters = DeadLetterStore(max_entries=settings.EVENTS_DEAD_LETTER_MAX)
    standings_queue = StandingsJobQueue(
        calculator,
        RetryPolicy(
            max_attempts=settings.STANDINGS_JOB_MAX_ATTEMPTS,
            delay_ms=settings.STANDINGS_JOB_RETRY_DELAY_MS,
        ),
        publisher=publisher,
        dead_letters=dead_letters,
    )

    handlers = {
        "match_completed": MatchCompletedHandler(repository, standings_queue),
        "tournament_status_changed": TournamentStatusChangedHandler(standings_queue),
        "standings_cache": StandingsCacheHandler(calculator),
    }
    registry = build_registry(settings.EVENTS_HANDLERS, handlers)

    ledger = ProcessedLedger()
    job_context = JobContext(
        registry=registry,
        default_retry_policy=RetryPolicy(
            max_attempts=settings.EVENTS_ERROR_MAX_RETRIES,
            delay_ms=settings.EVENTS_ERROR_RETRY_DELAY,
        ),
        ledger=ledger,
        dead_letters=dead_letters,
        max_payload_size=settings.EVENTS_MAX_PAYLOAD_SIZE,
        allowed_sources=settings.allowed_sources,
        max_deliveries=settings.EVENTS_MAX_DELIVERIES,
    )
    workers = WorkerPool(
        channel,
        job_context,
        concurrency=settings.EVENTS_WORKER_CONCURRENCY,
        pop_timeout=settings.EVENTS_POP_TIMEOUT_S,
    )

    # Each process keeps its own standings cache; invalidations must reach all of them
    broadcast = None
    if channel.supports_broadcast:
        broadcast = BroadcastListener(
            channel,
            [StandingsCacheHandler(calculator)],
            poll_timeout=settings.EVENTS_POP_TIMEOUT_S,
        )

    if token_validator is None:
        token_validator = CrossServiceTokenValidator(
            settings.AUTH_SERVICE_URL,
            timeout=settings.AUTH_TIMEOUT_S,
            cache=TTLCache(ttl=settings.AUTH_TOKEN_CACHE_TTL),
        )

    logger.info(
        f"Container ready: service={settings.SERVICE_NAME} channel={channel.name} "
        f"handlers={registry.describe()}"
    )
    return Container(
        settings=settings,
        engine=engine,
        channel=channel,
        history=history,
        publisher=publisher,
        registry=registry,
        ledger=ledger,
        dead_letters=dead_letters,
        job_context=job_context,
        workers=workers,
        repository=repository,
        calculator=calculator,
        standings_queue=standings_queue,
        token_validator=token_validator,
        broadcast=broadcast,
    )
