"""
Domain Layer - Core DDD building blocks

This module provides base classes for Domain-Driven Design:
- Entities: Objects with identity and lifecycle
- Value Objects: Immutable objects compared by value
- Events: Domain events doubling as query invalidation signals
- Exceptions: Domain-specific error handling
"""

from clinicflow.core.domain.entities import (
    AggregateRoot,
    Entity,
)
from clinicflow.core.domain.events import (
    DomainEvent,
    DomainEventPublisher,
)
from clinicflow.core.domain.exceptions import (
    DomainException,
    EntityNotFoundException,
    IntegrationException,
    InvalidOperationException,
    ValidationException,
)
from clinicflow.core.domain.value_objects import (
    StatusEnum,
    ValueObject,
    to_amount,
)

__all__ = [
    # Entities
    "Entity",
    "AggregateRoot",
    # Value Objects
    "ValueObject",
    "StatusEnum",
    "to_amount",
    # Events
    "DomainEvent",
    "DomainEventPublisher",
    # Exceptions
    "DomainException",
    "ValidationException",
    "EntityNotFoundException",
    "InvalidOperationException",
    "IntegrationException",
]
