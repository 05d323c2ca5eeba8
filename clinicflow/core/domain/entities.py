"""
Base Entity Classes for Domain-Driven Design

Entities are domain objects with identity and lifecycle.
A visit record keeps its identity while its status and balances change.
"""

from abc import ABC
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

# Type variable for entity ID (the backend issues opaque string ids)
TId = TypeVar("TId")


@dataclass
class Entity(ABC, Generic[TId]):
    """
    Base class for all domain entities.

    Type Parameters:
        TId: Type of entity identifier

    Example:
        ```python
        @dataclass
        class InvoiceLine(Entity[str]):
            plan_name: str = ""
            price: Decimal = Decimal("0")
        ```
    """

    id: TId | None = field(default=None)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __eq__(self, other: object) -> bool:
        """Entities are equal if they have the same ID."""
        if not isinstance(other, Entity):
            return False
        if self.id is None or other.id is None:
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id) if self.id is not None else id(self)

    def is_new(self) -> bool:
        """Check if entity has not been issued an id by the backend yet."""
        return self.id is None

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = datetime.now(UTC)


@dataclass
class AggregateRoot(Entity[TId], Generic[TId]):
    """
    Base class for aggregate roots.

    The aggregate root is the only entry point for mutating its members,
    so invariants such as ``0 <= paid <= total`` are checked in one place.
    Domain events recorded here are published by the application layer
    only after persistence succeeded.
    """

    _domain_events: list[Any] = field(default_factory=list, repr=False, compare=False)

    def _record_event(self, event: Any) -> None:
        """Record a domain event to be published later."""
        self._domain_events.append(event)

    def get_domain_events(self) -> list[Any]:
        """Get all recorded domain events."""
        return list(self._domain_events)

    def pull_domain_events(self) -> list[Any]:
        """Return recorded events and clear them."""
        events = list(self._domain_events)
        self._domain_events.clear()
        return events
