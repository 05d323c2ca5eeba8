# ============================================================================
# SCOPE: GLOBAL
# Description: Composition root for one operator session.
# ============================================================================
"""
Visit Container.

Wires settings, adapters and services of the visits domain. One instance
per operator session: it owns the HTTP clients, the real-time connection
and (for the redis backend) the Redis connection, all released by
``aclose()``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from clinicflow.config.settings import Settings, get_settings
from clinicflow.core.domain.events import DomainEventPublisher
from clinicflow.core.shared.logger import configure_logging

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from clinicflow.domains.visits.application.ports import ICheckoutLedger
    from clinicflow.domains.visits.application.services import (
        EventSubscriptionBroker,
        PaymentOrchestrator,
        VisitLifecycleController,
    )
    from clinicflow.domains.visits.infrastructure.external import (
        HttpInvoiceRenderer,
        HttpPaymentGateway,
        RestVisitRepository,
    )
    from clinicflow.domains.visits.infrastructure.realtime import StompWebSocketTransport

logger = logging.getLogger(__name__)


class VisitContainer:
    """
    Container for visits domain dependencies.

    Single Responsibility: Create and cache the session's collaborators.
    """

    def __init__(self, settings: Settings | None = None, setup_logging: bool = False):
        """
        Initialize container.

        Args:
            settings: Settings to use (defaults to the cached environment settings)
            setup_logging: Configure root logging from LOG_LEVEL / LOG_FORMAT
        """
        self.settings = settings or get_settings()
        if setup_logging:
            configure_logging(self.settings.LOG_LEVEL, self.settings.LOG_FORMAT)

        self._repository: RestVisitRepository | None = None
        self._gateway: HttpPaymentGateway | None = None
        self._renderer: HttpInvoiceRenderer | None = None
        self._transport: StompWebSocketTransport | None = None
        self._broker: EventSubscriptionBroker | None = None
        self._orchestrator: PaymentOrchestrator | None = None
        self._ledger: ICheckoutLedger | None = None
        self._redis: Redis | None = None
        self._publisher = DomainEventPublisher()
        self._controller: VisitLifecycleController | None = None

        logger.debug("VisitContainer initialized")

    def get_publisher(self) -> DomainEventPublisher:
        return self._publisher

    def get_repository(self) -> "RestVisitRepository":
        if self._repository is None:
            from clinicflow.domains.visits.infrastructure.external import RestVisitRepository

            self._repository = RestVisitRepository(
                base_url=self.settings.API_BASE_URL,
                timeout=self.settings.API_TIMEOUT,
                token=self.settings.API_TOKEN,
            )
        return self._repository

    def get_payment_gateway(self) -> "HttpPaymentGateway":
        if self._gateway is None:
            from clinicflow.domains.visits.infrastructure.external import HttpPaymentGateway

            self._gateway = HttpPaymentGateway(
                base_url=self.settings.API_BASE_URL,
                timeout=self.settings.API_TIMEOUT,
                token=self.settings.API_TOKEN,
            )
        return self._gateway

    def get_invoice_renderer(self) -> "HttpInvoiceRenderer":
        if self._renderer is None:
            from clinicflow.domains.visits.infrastructure.external import HttpInvoiceRenderer

            self._renderer = HttpInvoiceRenderer(
                base_url=self.settings.API_BASE_URL,
                timeout=self.settings.API_TIMEOUT,
                token=self.settings.API_TOKEN,
            )
        return self._renderer

    def get_transport(self) -> "StompWebSocketTransport":
        if self._transport is None:
            from clinicflow.domains.visits.infrastructure.realtime import StompWebSocketTransport

            headers = {"Authorization": f"Bearer {self.settings.API_TOKEN}"} if self.settings.API_TOKEN else None
            self._transport = StompWebSocketTransport(
                url=self.settings.WS_URL,
                connect_timeout=self.settings.WS_CONNECT_TIMEOUT,
                heartbeat_ms=self.settings.WS_HEARTBEAT_MS,
                headers=headers,
            )
        return self._transport

    def get_broker(self) -> "EventSubscriptionBroker":
        if self._broker is None:
            from clinicflow.domains.visits.application.services import EventSubscriptionBroker

            self._broker = EventSubscriptionBroker(self.get_transport())
        return self._broker

    def get_checkout_ledger(self) -> "ICheckoutLedger":
        if self._ledger is None:
            if self.settings.CHECKOUT_LEDGER_BACKEND == "redis":
                import redis.asyncio as aioredis

                from clinicflow.domains.visits.infrastructure.idempotency import RedisCheckoutLedger

                self._redis = aioredis.from_url(self.settings.REDIS_URL)
                self._ledger = RedisCheckoutLedger(
                    self._redis,
                    lock_ttl_ms=self.settings.CHECKOUT_LOCK_TTL_MS,
                    completed_ttl_ms=self.settings.CHECKOUT_COMPLETED_TTL_MS,
                )
                logger.info("Checkout ledger: redis")
            else:
                from clinicflow.domains.visits.infrastructure.idempotency import InMemoryCheckoutLedger

                self._ledger = InMemoryCheckoutLedger()
                logger.info("Checkout ledger: memory")
        return self._ledger

    def get_orchestrator(self) -> "PaymentOrchestrator":
        if self._orchestrator is None:
            from clinicflow.domains.visits.application.services import PaymentOrchestrator

            self._orchestrator = PaymentOrchestrator(
                gateway=self.get_payment_gateway(),
                broker=self.get_broker(),
                settlement_timeout=self.settings.QR_SETTLEMENT_TIMEOUT,
                return_url=self.settings.PAYMENT_RETURN_URL,
                cancel_url=self.settings.PAYMENT_CANCEL_URL,
                currency=self.settings.CURRENCY,
            )
        return self._orchestrator

    def get_controller(self) -> "VisitLifecycleController":
        if self._controller is None:
            from clinicflow.domains.visits.application.services import VisitLifecycleController

            self._controller = VisitLifecycleController(
                repository=self.get_repository(),
                orchestrator=self.get_orchestrator(),
                renderer=self.get_invoice_renderer(),
                ledger=self.get_checkout_ledger(),
                publisher=self._publisher,
            )
        return self._controller

    async def aclose(self) -> None:
        """Release every connection opened by this container."""
        if self._broker is not None:
            await self._broker.disconnect()
        for client in (self._repository, self._gateway, self._renderer):
            if client is not None:
                await client.close()
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        logger.info("VisitContainer closed")
