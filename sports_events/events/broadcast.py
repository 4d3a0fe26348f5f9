"""
Process-local fan-out of channel events.

Work handlers run once per event on whichever worker claimed it. Some
reactions are per-process instead: every API and worker process keeps its own
standings cache, and each must drop its copy when a table changes. The
BroadcastListener tails the channel (a non-destructive read) and runs such
handlers locally for every event, in every process.

Best effort: no retries, no ledger, no dead letters. A missed invalidation is
bounded by the cache TTL.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from sports_events.errors import ChannelUnavailableError, MalformedEventError
from sports_events.events.channel import EventChannel
from sports_events.events.envelope import decode_envelope
from sports_events.events.registry import EventHandler
from sports_events.events.retry import RetryPolicy

logger = logging.getLogger("sports_events.broadcast")


def stream_cursor_now(clock: Callable[[], float] = time.time) -> str:
    """Stream id for 'from now on' (ids are millisecond timestamps)."""
    return f"{int(clock() * 1000)}-0"


class BroadcastListener:
    """Runs local handlers for every event seen on the channel."""

    def __init__(
        self,
        channel: EventChannel,
        handlers: list[EventHandler],
        *,
        poll_timeout: float = 1.0,
        reconnect_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.channel = channel
        self.handlers = handlers
        self.poll_timeout = poll_timeout
        self.reconnect_policy = reconnect_policy or RetryPolicy(max_attempts=10, delay_ms=5000)
        self.sleep = sleep
        self.cursor = stream_cursor_now()
        self.seen = 0
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def poll_once(self) -> int:
        """Read one batch and dispatch it locally. Returns events dispatched."""
        self.cursor, deliveries = await self.channel.tail(self.cursor, self.poll_timeout)
        for delivery in deliveries:
            try:
                envelope = decode_envelope(delivery.raw)
            except MalformedEventError:
                # The worker that claims it parks it; nothing to do here
                continue
            self.seen += 1
            for handler in self.handlers:
                if not handler.can_handle(envelope.type):
                    continue
                try:
                    await handler.handle(envelope)
                except Exception as e:
                    logger.warning(
                        f"[BROADCAST] {handler.name} failed on {envelope.event_id}: "
                        f"{type(e).__name__}: {e}"
                    )
        return len(deliveries)

    async def run_forever(self) -> None:
        logger.info(f"[BROADCAST] Tailing {self.channel.name} for {[h.name for h in self.handlers]}")
        errors = 0
        while not self._stop.is_set():
            try:
                await self.poll_once()
                errors = 0
            except ChannelUnavailableError as e:
                errors += 1
                if errors >= self.reconnect_policy.max_attempts:
                    logger.error(f"[BROADCAST] Giving up after {errors} channel errors: {e}")
                    raise
                delay = self.reconnect_policy.delay_for(errors)
                logger.warning(f"[BROADCAST] Channel error ({errors}), retrying in {delay:.1f}s: {e}")
                await self.sleep(delay)

    async def start(self) -> None:
        if self._task is not None:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self.run_forever())

    async def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._task is None:
            return
        task, self._task = self._task, None
        done, _pending = await asyncio.wait([task], timeout=timeout)
        if not done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        elif not task.cancelled() and task.exception() is not None:
            logger.error(f"[BROADCAST] Listener exited with {task.exception()!r}")
