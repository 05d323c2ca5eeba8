"""
Shared pytest fixtures for all tests.

This module provides the in-memory collaborators of the visits domain,
a mock Redis client and the wired controller most tests drive.
"""

import os
from unittest.mock import AsyncMock, Mock

import pytest
from redis.asyncio import Redis

from clinicflow.config.settings import reset_settings
from clinicflow.core.domain.events import DomainEvent, DomainEventPublisher
from clinicflow.domains.visits.application.services import (
    EventSubscriptionBroker,
    PaymentOrchestrator,
    VisitLifecycleController,
)
from clinicflow.domains.visits.infrastructure.idempotency import InMemoryCheckoutLedger
from tests.utils.fakes import FakeInvoiceRenderer, FakePaymentGateway, FakeRealtimeTransport, FakeVisitRepository

# Ensure test environment
os.environ["CLINICFLOW_LOG_LEVEL"] = "DEBUG"


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are cached per process; every test starts from the environment."""
    reset_settings()
    yield
    reset_settings()


# ============================================================================
# REDIS FIXTURES
# ============================================================================


@pytest.fixture
def mock_redis() -> Mock:
    """Create a mock Redis client."""
    mock = Mock(spec=Redis)
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    return mock


# ============================================================================
# VISITS DOMAIN FIXTURES
# ============================================================================


@pytest.fixture
def repository() -> FakeVisitRepository:
    return FakeVisitRepository()


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def transport() -> FakeRealtimeTransport:
    return FakeRealtimeTransport()


@pytest.fixture
def renderer() -> FakeInvoiceRenderer:
    return FakeInvoiceRenderer()


@pytest.fixture
def ledger() -> InMemoryCheckoutLedger:
    return InMemoryCheckoutLedger()


@pytest.fixture
def broker(transport) -> EventSubscriptionBroker:
    return EventSubscriptionBroker(transport)


@pytest.fixture
def orchestrator(gateway, broker) -> PaymentOrchestrator:
    return PaymentOrchestrator(gateway=gateway, broker=broker, settlement_timeout=30.0)


@pytest.fixture
def published() -> list[DomainEvent]:
    return []


@pytest.fixture
def publisher(published) -> DomainEventPublisher:
    publisher = DomainEventPublisher()
    publisher.subscribe_all(published.append)
    return publisher


@pytest.fixture
def controller(repository, orchestrator, renderer, ledger, publisher) -> VisitLifecycleController:
    return VisitLifecycleController(
        repository=repository,
        orchestrator=orchestrator,
        renderer=renderer,
        ledger=ledger,
        publisher=publisher,
    )
