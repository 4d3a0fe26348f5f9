"""Retry policy shared by publishing, handler invocation and standings jobs.

Delay is fixed by default (backoff_multiplier=1.0). A multiplier > 1 turns it
into exponential backoff: delay_ms * multiplier ** (attempt - 1), capped at
max_delay_ms.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    delay_ms: int = 100
    backoff_multiplier: float = 1.0
    max_delay_ms: int = 60_000

    def __post_init__(self):
        if not isinstance(self.max_attempts, int) or self.max_attempts < 1:
            raise ValueError(f"max_attempts must be an int >= 1, got {self.max_attempts!r}")
        if self.delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {self.delay_ms!r}")
        if self.backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1.0")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        delay = self.delay_ms * (self.backoff_multiplier ** (max(1, attempt) - 1))
        return min(delay, self.max_delay_ms) / 1000.0


@dataclass
class RetryOutcome:
    """Result of run_with_retry. `value` is only meaningful when ok."""

    ok: bool
    attempts: int
    value: object = None
    error: Optional[BaseException] = None


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "operation",
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_failure: Optional[Callable[[int, BaseException], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RetryOutcome:
    """
    Run `operation` until it succeeds or the policy is exhausted.

    Never raises for exceptions matching `retry_on`; the last one is returned
    in the outcome so the caller decides whether it is fatal. Anything else
    (including CancelledError) propagates immediately.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            value = await operation()
            return RetryOutcome(ok=True, attempts=attempt, value=value)
        except retry_on as e:
            last_error = e
            if on_failure is not None:
                on_failure(attempt, e)
            logger.warning(
                f"[RETRY] {label} attempt {attempt}/{policy.max_attempts} failed: "
                f"{type(e).__name__}: {e}"
            )
            # Don't wait after the last attempt
            if attempt < policy.max_attempts:
                await sleep(policy.delay_for(attempt))

    return RetryOutcome(ok=False, attempts=policy.max_attempts, error=last_error)
