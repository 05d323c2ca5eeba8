"""
Base Domain Event Classes for Domain-Driven Design

Domain events are immutable records of something that happened in the
domain. In this project they double as query invalidation signals: the UI
subscribes and refetches the listed query keys.
"""

import logging
from abc import ABC
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Coroutine
from uuid import UUID, uuid4

logger = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class DomainEvent(ABC):
    """
    Base class for all domain events.

    Example:
        ```python
        @dataclass(frozen=True)
        class VisitStatusChanged(DomainEvent):
            record_id: str
            previous: str
            current: str
        ```
    """

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    version: int = field(default=1)

    @property
    def event_type(self) -> str:
        """Get the event type name (class name)."""
        return self.__class__.__name__

    @property
    def invalidates(self) -> tuple[str, ...]:
        """Query keys that callers should refetch after this event."""
        return ()

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for serialization."""
        result: dict[str, Any] = {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "version": self.version,
            "invalidates": list(self.invalidates),
        }
        for key, value in self.__dict__.items():
            if key in result:
                continue
            if isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, UUID):
                result[key] = str(value)
            else:
                result[key] = value
        return result


# Handlers may be sync (UI callbacks) or async
EventHandler = Callable[[DomainEvent], Coroutine[Any, Any, None] | None]


class DomainEventPublisher:
    """
    In-memory domain event publisher.

    One instance per operator session, injected into the controller.
    A failing handler is logged and does not stop the others, since the
    state change it reports has already been persisted.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._catch_all: list[EventHandler] = []

    def subscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Type of event to subscribe to
            handler: Sync or async handler function
        """
        self._handlers.setdefault(event_type.__name__, []).append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to every event (query invalidation listeners)."""
        self._catch_all.append(handler)

    async def publish(self, event: DomainEvent) -> None:
        """
        Publish a domain event to all subscribers.

        Args:
            event: Event to publish
        """
        handlers = [*self._handlers.get(event.event_type, []), *self._catch_all]
        for handler in handlers:
            try:
                result = handler(event)
                if result is not None:
                    await result
            except Exception as e:
                logger.error(f"Error in event handler for {event.event_type}: {e}")

    async def publish_all(self, events: list[DomainEvent]) -> None:
        """Publish multiple events in order."""
        for event in events:
            await self.publish(event)

    def clear_handlers(self) -> None:
        """Clear all event handlers (useful for testing)."""
        self._handlers.clear()
        self._catch_all.clear()
