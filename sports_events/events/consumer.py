"""
Event workers: consume the channel and run one ProcessEventJob per message.

Several workers run concurrently against the same channel (and, with Redis,
across processes). No coordinator serialises unrelated events; within one
event, handlers run in registration order.

A message is acked only once its job returns (any terminal status). If the job
is interrupted (cancellation on shutdown, unexpected error) the message is
released back to the channel instead of being lost.
"""

import asyncio
import logging
from typing import Optional

from sports_events.errors import ChannelUnavailableError
from sports_events.events.channel import Delivery, EventChannel
from sports_events.events.job import JobContext, JobResult, ProcessEventJob
from sports_events.events.retry import RetryPolicy

logger = logging.getLogger("sports_events.worker")


class EventWorker:
    """Pulls messages off the channel until stopped."""

    def __init__(
        self,
        channel: EventChannel,
        context: JobContext,
        *,
        pop_timeout: float = 1.0,
        reconnect_policy: Optional[RetryPolicy] = None,
        name: str = "event-worker",
    ):
        self.channel = channel
        self.context = context
        self.pop_timeout = pop_timeout
        self.reconnect_policy = reconnect_policy or RetryPolicy(max_attempts=10, delay_ms=5000)
        self.name = name
        self.processed = 0
        self._consecutive_channel_errors = 0

    async def run_once(self) -> Optional[JobResult]:
        """Process at most one message. None when the pop timed out."""
        delivery = await self.channel.pop(self.pop_timeout)
        if delivery is None:
            return None
        result = await self._process(delivery)
        await self.channel.ack(delivery)
        self.processed += 1
        return result

    async def _process(self, delivery: Delivery) -> JobResult:
        job = ProcessEventJob(delivery.raw, self.context, delivery_attempt=delivery.attempt)
        try:
            return await job.run()
        except BaseException:
            logger.warning(f"[WORKER] {self.name} interrupted, releasing message {delivery.message_id}")
            await self.channel.release(delivery)
            raise

    async def run_forever(self, stop: asyncio.Event) -> None:
        logger.info(f"[WORKER] {self.name} started on channel {self.channel.name}")
        while not stop.is_set():
            try:
                await self.run_once()
                self._consecutive_channel_errors = 0
            except ChannelUnavailableError as e:
                self._consecutive_channel_errors += 1
                attempt = self._consecutive_channel_errors
                if attempt >= self.reconnect_policy.max_attempts:
                    logger.error(f"[WORKER] {self.name} giving up after {attempt} channel errors: {e}")
                    raise
                delay = self.reconnect_policy.delay_for(attempt)
                logger.warning(
                    f"[WORKER] {self.name} channel error ({attempt}/"
                    f"{self.reconnect_policy.max_attempts}), retrying in {delay:.1f}s: {e}"
                )
                await self.context.sleep(delay)
        logger.info(f"[WORKER] {self.name} stopped (processed={self.processed})")


class WorkerPool:
    """N EventWorkers sharing one channel and one JobContext."""

    def __init__(self, channel: EventChannel, context: JobContext, concurrency: int = 2, pop_timeout: float = 1.0):
        self.workers = [
            EventWorker(channel, context, pop_timeout=pop_timeout, name=f"event-worker-{i}")
            for i in range(max(1, concurrency))
        ]
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        if self._tasks:
            return
        self._stop.clear()
        self._tasks = [asyncio.create_task(w.run_forever(self._stop)) for w in self.workers]
        logger.info(f"[WORKER] Started {len(self._tasks)} event workers")

    async def stop(self, timeout: float = 10.0) -> None:
        """
        Signal stop and wait up to `timeout` for in-flight jobs to finish.

        Workers still busy after the timeout are cancelled; their messages are
        released back to the channel. Workers that died earlier (e.g. channel
        reconnect budget exhausted) have their exception logged here.
        """
        self._stop.set()
        if not self._tasks:
            return
        done, pending = await asyncio.wait(self._tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"[WORKER] {len(pending)} workers did not finish in {timeout}s, cancelled")
        for task in done:
            if task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                logger.error(f"[WORKER] Worker exited with {type(error).__name__}: {error}")
        self._tasks = []

    @property
    def failed(self) -> int:
        """Workers whose task ended with an exception."""
        return sum(1 for t in self._tasks if t.done() and not t.cancelled() and t.exception() is not None)

    @property
    def running(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    @property
    def processed(self) -> int:
        return sum(w.processed for w in self.workers)
