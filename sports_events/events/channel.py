"""
Event channel transports.

- InMemoryEventChannel: asyncio.Queue, single-process (dev, tests).
- RedisEventChannel: Redis Stream read through a consumer group, shared by
  every worker process.

Delivery contract (both transports):
- pop() hands out a Delivery; the message stays owned by the consumer until
  ack() (job reached a terminal status) or release() (job interrupted, put
  the message back). A worker that dies between pop and ack does not lose the
  message: with Redis it stays in the group's pending list and is reclaimed by
  another consumer after `claim_idle_ms`.
- Delivery is therefore at-least-once; the processed ledger makes repeated
  deliveries of the same event_id skip handlers that already completed.

Redis streams also support non-destructive reads (tail()), used to fan out
cache invalidations to every process rather than to one worker.

Both raise ChannelUnavailableError for transient transport failures so the
publisher and workers can apply their retry policies uniformly.
"""

import asyncio
import logging
import os
import socket
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Union

from sports_events.errors import ChannelUnavailableError

logger = logging.getLogger(__name__)

RawMessage = Union[str, bytes]


@dataclass(frozen=True)
class Delivery:
    """One message handed to a consumer."""

    raw: RawMessage
    message_id: Optional[str] = None
    attempt: int = 1


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class EventChannel(ABC):
    """Durable transport events are pushed to and consumed from."""

    name: str
    supports_broadcast = False

    @abstractmethod
    async def push(self, message: str) -> int:
        """Append a serialized envelope. Returns the transport's depth."""

    @abstractmethod
    async def pop(self, timeout: float) -> Optional[Delivery]:
        """Block up to `timeout` seconds for the next message; None on timeout."""

    @abstractmethod
    async def ack(self, delivery: Delivery) -> None:
        """The delivery reached a terminal status; never hand it out again."""

    @abstractmethod
    async def release(self, delivery: Delivery) -> None:
        """Processing was interrupted; make the message available again."""

    @abstractmethod
    async def ping(self) -> bool:
        """True if the transport is reachable."""

    async def tail(self, cursor: str, timeout: float) -> tuple[str, list[Delivery]]:
        """Read messages after `cursor` without consuming them."""
        raise NotImplementedError(f"{type(self).__name__} does not support broadcast reads")

    async def close(self) -> None:
        return None


class InMemoryEventChannel(EventChannel):
    """In-process channel backed by asyncio.Queue."""

    def __init__(self, name: str = "sports.events", max_size: int = 0):
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_size)
        self._in_flight: dict[str, Delivery] = {}
        self._seq = 0

    async def push(self, message: str) -> int:
        self._put(Delivery(raw=message))
        return self._queue.qsize()

    def _put(self, delivery: Delivery) -> None:
        try:
            self._queue.put_nowait(delivery)
        except asyncio.QueueFull as e:
            raise ChannelUnavailableError(
                f"channel {self.name} full ({self._queue.maxsize})"
            ) from e

    async def pop(self, timeout: float) -> Optional[Delivery]:
        try:
            queued = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        self._seq += 1
        delivery = Delivery(raw=queued.raw, message_id=str(self._seq), attempt=queued.attempt)
        self._in_flight[delivery.message_id] = delivery
        return delivery

    async def ack(self, delivery: Delivery) -> None:
        self._in_flight.pop(delivery.message_id, None)

    async def release(self, delivery: Delivery) -> None:
        if self._in_flight.pop(delivery.message_id, None) is None:
            return
        self._put(Delivery(raw=delivery.raw, attempt=delivery.attempt + 1))
        logger.warning(f"[CHANNEL] Released message {delivery.message_id} back to {self.name}")

    async def ping(self) -> bool:
        return True

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)


class RedisEventChannel(EventChannel):
    """
    Redis Stream consumed through a consumer group.

    XADD appends, XREADGROUP hands each entry to one consumer, XACK retires
    it. Entries left pending by a crashed consumer are taken over with
    XAUTOCLAIM once idle for `claim_idle_ms`.
    """

    supports_broadcast = True

    def __init__(
        self,
        url: str = "",
        name: str = "sports.events",
        client: Any = None,
        *,
        group: str = "sports-events-workers",
        consumer: Optional[str] = None,
        claim_idle_ms: int = 60000,
        claim_interval_s: float = 5.0,
        max_len: int = 100000,
    ):
        self.name = name
        self.group = group
        self.consumer = consumer or f"{socket.gethostname()}-{os.getpid()}"
        self.claim_idle_ms = claim_idle_ms
        self.claim_interval_s = claim_interval_s
        self.max_len = max_len
        if client is None:
            import redis.asyncio as aioredis

            client = aioredis.from_url(url)
        self._client = client
        self._group_ready = False
        self._last_claim: Optional[float] = None

    async def _ensure_group(self) -> None:
        from redis.exceptions import ResponseError

        if self._group_ready:
            return
        try:
            # id="0": entries appended before the group existed are still delivered
            await self._client.xgroup_create(self.name, self.group, id="0", mkstream=True)
            logger.info(f"[CHANNEL] Created consumer group {self.group} on {self.name}")
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
        self._group_ready = True

    async def push(self, message: str) -> int:
        from redis.exceptions import RedisError

        try:
            await self._ensure_group()
            await self._client.xadd(
                self.name, {"data": message}, maxlen=self.max_len, approximate=True
            )
            return int(await self._client.xlen(self.name))
        except (RedisError, OSError) as e:
            raise ChannelUnavailableError(f"push to {self.name} failed: {e}") from e

    async def pop(self, timeout: float) -> Optional[Delivery]:
        from redis.exceptions import RedisError

        try:
            await self._ensure_group()
            reclaimed = await self._reclaim_one()
            if reclaimed is not None:
                return reclaimed
            # BLOCK is in milliseconds; 0 would block forever
            response = await self._client.xreadgroup(
                self.group,
                self.consumer,
                {self.name: ">"},
                count=1,
                block=max(int(timeout * 1000), 1),
            )
        except (RedisError, OSError) as e:
            raise ChannelUnavailableError(f"pop from {self.name} failed: {e}") from e

        for _stream, entries in response or []:
            for message_id, fields in entries:
                return Delivery(raw=self._payload(fields), message_id=_text(message_id))
        return None

    async def _reclaim_one(self) -> Optional[Delivery]:
        now = time.monotonic()
        if self._last_claim is not None and now - self._last_claim < self.claim_interval_s:
            return None
        self._last_claim = now

        response = await self._client.xautoclaim(
            self.name,
            self.group,
            self.consumer,
            min_idle_time=self.claim_idle_ms,
            start_id="0-0",
            count=1,
        )
        entries = response[1] if response and len(response) > 1 else []
        for message_id, fields in entries:
            message_id = _text(message_id)
            if not fields:
                # Trimmed from the stream while pending; nothing left to deliver
                await self._client.xack(self.name, self.group, message_id)
                continue
            attempt = await self._times_delivered(message_id)
            logger.warning(
                f"[CHANNEL] Reclaimed orphaned message {message_id} from {self.name} "
                f"(delivery {attempt})"
            )
            # Do not wait out the interval while orphans remain
            self._last_claim = None
            return Delivery(raw=self._payload(fields), message_id=message_id, attempt=attempt)
        return None

    async def _times_delivered(self, message_id: str) -> int:
        pending = await self._client.xpending_range(
            self.name, self.group, min=message_id, max=message_id, count=1
        )
        if not pending:
            return 2
        return int(pending[0].get("times_delivered", 2))

    @staticmethod
    def _payload(fields: dict) -> RawMessage:
        if b"data" in fields:
            return fields[b"data"]
        return fields.get("data", "")

    async def ack(self, delivery: Delivery) -> None:
        from redis.exceptions import RedisError

        try:
            await self._client.xack(self.name, self.group, delivery.message_id)
        except (RedisError, OSError) as e:
            raise ChannelUnavailableError(f"ack on {self.name} failed: {e}") from e

    async def release(self, delivery: Delivery) -> None:
        # Left pending on purpose: XAUTOCLAIM hands it to a live consumer
        logger.warning(
            f"[CHANNEL] Message {delivery.message_id} left pending on {self.name}, "
            f"reclaimable after {self.claim_idle_ms}ms"
        )

    async def tail(self, cursor: str, timeout: float) -> tuple[str, list[Delivery]]:
        from redis.exceptions import RedisError

        try:
            response = await self._client.xread(
                {self.name: cursor}, count=100, block=max(int(timeout * 1000), 1)
            )
        except (RedisError, OSError) as e:
            raise ChannelUnavailableError(f"tail of {self.name} failed: {e}") from e

        deliveries = []
        for _stream, entries in response or []:
            for message_id, fields in entries:
                cursor = _text(message_id)
                deliveries.append(Delivery(raw=self._payload(fields), message_id=cursor))
        return cursor, deliveries

    async def ping(self) -> bool:
        from redis.exceptions import RedisError

        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as e:
            logger.error(f"[CHANNEL] Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._client.aclose()


def build_channel(redis_url: str, name: str, **redis_options) -> EventChannel:
    """Redis when REDIS_URL is configured, otherwise in-process."""
    if redis_url:
        logger.info(f"[CHANNEL] Using Redis stream '{name}'")
        return RedisEventChannel(url=redis_url, name=name, **redis_options)
    logger.warning(f"[CHANNEL] REDIS_URL not set, using in-memory channel '{name}'")
    return InMemoryEventChannel(name=name)
