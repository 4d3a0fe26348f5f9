"""
Handler contract and dispatch registry.

Handler authors: delivery is AT-LEAST-ONCE. The same event can reach a
handler again after a worker crash or redelivery, so `handle` must be
idempotent (upsert by natural key, compare-before-write, etc.).

`handle` must NOT raise for expected business conditions (unknown entity,
event not applicable, missing optional data): log and return. Raise only for
infrastructure problems worth retrying (database down, downstream timeout).
"""

import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Iterable, Mapping, Optional

from sports_events.events.envelope import EventEnvelope
from sports_events.events.retry import RetryPolicy

logger = logging.getLogger("sports_events.registry")


class EventHandler(ABC):
    """A unit of business logic reacting to one or more event types."""

    event_types: ClassVar[frozenset[str]] = frozenset()

    # Per-handler retry budget; None = the job's default policy
    retry_policy: Optional[RetryPolicy] = None

    @property
    def name(self) -> str:
        return type(self).__name__

    def handled_types(self) -> frozenset[str]:
        return frozenset(self.event_types)

    def can_handle(self, event_type: str) -> bool:
        return event_type in self.handled_types()

    @abstractmethod
    async def handle(self, event: EventEnvelope) -> None:
        """Process one event."""

    def __repr__(self):
        return f"<{self.name} types={sorted(self.handled_types())}>"


class EventDispatchRegistry:
    """
    Maps event types to handlers in registration order.

    Registration is a routing hint; `can_handle` is the authority, so a
    handler registered for a type it refuses is filtered out at resolve time.
    """

    def __init__(self):
        self._routes: dict[str, list[EventHandler]] = {}
        self._by_name: dict[str, EventHandler] = {}

    def register(self, handler: EventHandler, event_types: Optional[Iterable[str]] = None) -> None:
        """
        Route `event_types` (default: the handler's own) to `handler`.

        Raises:
            ValueError: a different handler instance already uses this name.
        """
        types = list(event_types) if event_types is not None else sorted(handler.handled_types())
        if not types:
            logger.warning(f"[REGISTRY] {handler.name} declares no event types, not registered")
            return
        owner = self._by_name.get(handler.name)
        if owner is not None and owner is not handler:
            # The processed ledger is keyed by (event_id, handler.name)
            raise ValueError(
                f"handler name '{handler.name}' already registered by {owner!r}"
            )
        self._by_name[handler.name] = handler
        for event_type in types:
            route = self._routes.setdefault(event_type, [])
            if any(existing is handler for existing in route):
                continue
            route.append(handler)
            logger.info(f"[REGISTRY] {handler.name} registered for {event_type}")

    def resolve(self, event_type: str) -> list[EventHandler]:
        """Handlers for `event_type` in registration order; [] when none apply."""
        return [h for h in self._routes.get(event_type, []) if h.can_handle(event_type)]

    def registered_types(self) -> list[str]:
        return list(self._routes.keys())

    def describe(self) -> dict[str, list[str]]:
        return {t: [h.name for h in hs] for t, hs in self._routes.items()}


def build_registry(
    table: Mapping[str, Iterable[str]],
    handlers: Mapping[str, EventHandler],
) -> EventDispatchRegistry:
    """
    Build a registry from a static {event_type: [handler_key, ...]} table.

    Unknown handler keys are logged and skipped; a typo in configuration must
    not take the worker down.
    """
    registry = EventDispatchRegistry()
    for event_type, keys in table.items():
        for key in keys:
            handler = handlers.get(key)
            if handler is None:
                logger.warning(f"[REGISTRY] Unknown handler '{key}' configured for {event_type}, skipping")
                continue
            registry.register(handler, [event_type])
    return registry
