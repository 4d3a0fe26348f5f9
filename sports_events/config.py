"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


DEFAULT_EVENT_HANDLERS: dict[str, list[str]] = {
    "match.completed": ["match_completed", "standings_cache"],
    "tournament.status.changed": ["tournament_status_changed"],
    "standings.updated": ["standings_cache"],
}


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    SERVICE_NAME: str = "results-service"

    # Persistence
    DATABASE_URL: str = "sqlite+aiosqlite:///./sports_events.db"

    # Channel transport (empty = in-process queue, single-process deployments only)
    REDIS_URL: str = ""

    # ═══════════════════════════════════════════════════════════════
    # Event publishing
    # ═══════════════════════════════════════════════════════════════
    EVENTS_DEFAULT_CHANNEL: str = "sports.events"
    EVENTS_ENABLED: bool = True
    EVENTS_VERSION: str = "1.0"

    EVENTS_RETRY_MAX_ATTEMPTS: int = 3
    EVENTS_RETRY_DELAY_MS: int = 100
    EVENTS_RETRY_BACKOFF_MULTIPLIER: float = 1.0  # 1.0 = fixed delay

    # History (bounded by count AND age)
    EVENTS_HISTORY_TTL: int = 86400  # 24 hours
    EVENTS_HISTORY_MAX: int = 1000

    # ═══════════════════════════════════════════════════════════════
    # Event consumption
    # ═══════════════════════════════════════════════════════════════
    EVENTS_ERROR_MAX_RETRIES: int = 3  # Per-handler budget, independent of publish
    EVENTS_ERROR_RETRY_DELAY: int = 1000  # ms
    EVENTS_DEAD_LETTER_MAX: int = 1000
    EVENTS_MAX_PAYLOAD_SIZE: int = 1048576  # 1MB
    EVENTS_ALLOWED_SOURCES: str = ""  # "tournament-service,match-service"; empty = any
    EVENTS_HANDLERS: dict[str, list[str]] = DEFAULT_EVENT_HANDLERS
    EVENTS_WORKER_CONCURRENCY: int = 2
    EVENTS_POP_TIMEOUT_S: float = 1.0
    EVENTS_MAX_DELIVERIES: int = 5  # Redeliveries after worker crashes before parking
    EVENTS_CONSUMER_GROUP: str = "sports-events-workers"
    EVENTS_CLAIM_IDLE_MS: int = 60000  # Pending this long = consumer presumed dead

    # ═══════════════════════════════════════════════════════════════
    # Inter-service auth
    # ═══════════════════════════════════════════════════════════════
    AUTH_SERVICE_URL: str = "http://localhost:8001"
    AUTH_TIMEOUT_S: float = 5.0
    AUTH_TOKEN_CACHE_TTL: int = 300  # 5 minutes

    # ═══════════════════════════════════════════════════════════════
    # Standings
    # ═══════════════════════════════════════════════════════════════
    STANDINGS_POINTS_WIN: int = 3
    STANDINGS_POINTS_DRAW: int = 1
    STANDINGS_POINTS_LOSS: int = 0
    STANDINGS_CACHE_TTL: int = 1800  # 30 minutes
    STANDINGS_JOB_MAX_ATTEMPTS: int = 3
    STANDINGS_JOB_RETRY_DELAY_MS: int = 1000

    # Observability
    SENTRY_DSN: str = ""
    SENTRY_TRACES_SAMPLE_RATE: float = 0.05
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def allowed_sources(self) -> frozenset[str]:
        """Parsed EVENTS_ALLOWED_SOURCES; empty means every source is accepted."""
        return frozenset(
            s.strip() for s in self.EVENTS_ALLOWED_SOURCES.split(",") if s.strip()
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
