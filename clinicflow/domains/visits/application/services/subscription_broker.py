# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Per-invoice routing of payment settlement events.
# ============================================================================
"""Event Subscription Broker.

Owns the single real-time connection of an operator session and routes
settlement events to at most one active subscription per invoice id.

A subscription may be created before its invoice id exists: the QR flow
opens the channel first, creates the gateway payment second and binds
the returned invoice id third, so no settlement event can arrive
unobserved.
"""

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, Union

from clinicflow.core.domain.exceptions import InvalidOperationException, ValidationException

from ...domain.exceptions import DuplicateSubscription
from ..ports.realtime_transport_port import Detach, IRealtimeTransport, PaymentEvent
from .completion_slot import CompletionSlot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelLost:
    """The connection dropped before the subscription fired."""

    reason: str


SubscriptionSignal = Union[PaymentEvent, ChannelLost]


class Subscription:
    """Single-fire handle for one invoice's settlement.

    Fires exactly once, with the first ``PAYMENT_SUCCESS`` event or with
    ``ChannelLost``. ``unsubscribe`` is idempotent and safe after firing.
    """

    def __init__(self, broker: "EventSubscriptionBroker") -> None:
        self._broker = broker
        self._slot: CompletionSlot[SubscriptionSignal] = CompletionSlot()
        self._invoice_id: str | None = None
        self._detach: Detach | None = None
        self._closed = False

    @property
    def invoice_id(self) -> str | None:
        return self._invoice_id

    @property
    def fired(self) -> bool:
        return self._slot.resolved

    @property
    def closed(self) -> bool:
        return self._closed

    def on_signal(self, callback: Callable[[SubscriptionSignal], None]) -> None:
        self._slot.add_done_callback(callback)

    async def wait(self, timeout: float | None = None) -> SubscriptionSignal:
        return await self._slot.wait(timeout)

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._broker._forget(self)
        detach, self._detach = self._detach, None
        if detach is not None:
            try:
                await detach()
            except Exception as e:
                logger.warning(f"[BROKER] Detach failed for invoice {self._invoice_id}: {e}")

    def _fire(self, signal: SubscriptionSignal) -> bool:
        return self._slot.try_resolve(signal)


class EventSubscriptionBroker:
    """Routes settlement events by invoice id.

    Example:
        ```python
        subscription = await broker.subscribe()
        link = await gateway.create_payment_link(amount, context)
        await broker.bind(subscription, link.invoice_id)
        signal = await subscription.wait()
        await subscription.unsubscribe()
        ```
    """

    def __init__(self, transport: IRealtimeTransport):
        self._transport = transport
        self._active: dict[str, Subscription] = {}
        self._unbound: set[Subscription] = set()
        self._connect_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._transport.is_connected

    def active_invoice_ids(self) -> list[str]:
        return list(self._active)

    async def connect(self) -> None:
        """Open the transport unless already connected."""
        async with self._connect_lock:
            if self._transport.is_connected:
                return
            await self._transport.connect(on_connection_lost=self._on_connection_lost)
            logger.info("[BROKER] Real-time transport connected")

    async def disconnect(self) -> None:
        """Close the transport; subscriptions still waiting fire ``ChannelLost``."""
        self._notify_lost("session closed")
        await self._transport.disconnect()
        logger.info("[BROKER] Real-time transport disconnected")

    async def subscribe(self, invoice_id: str | None = None) -> Subscription:
        """Open a subscription, bound to ``invoice_id`` when given.

        Raises:
            DuplicateSubscription: If ``invoice_id`` already has an active one.
        """
        if invoice_id is not None and invoice_id in self._active:
            raise DuplicateSubscription(invoice_id)
        await self.connect()
        subscription = Subscription(self)
        self._unbound.add(subscription)
        if invoice_id is not None:
            await self.bind(subscription, invoice_id)
        return subscription

    async def bind(self, subscription: Subscription, invoice_id: str) -> None:
        """Attach an invoice id to a subscription opened without one.

        Raises:
            ValidationException: If ``invoice_id`` is empty.
            InvalidOperationException: If the subscription is closed or bound.
            DuplicateSubscription: If ``invoice_id`` already has an active one.
        """
        if not invoice_id:
            raise ValidationException("Invoice id is required to bind a subscription", field="invoice_id")
        if subscription.closed:
            raise InvalidOperationException("bind_subscription", "UNSUBSCRIBED")
        if subscription.invoice_id is not None:
            raise InvalidOperationException("bind_subscription", f"BOUND:{subscription.invoice_id}")
        if invoice_id in self._active:
            raise DuplicateSubscription(invoice_id)

        # Reserve before awaiting so a concurrent bind sees the invoice as taken
        self._active[invoice_id] = subscription
        self._unbound.discard(subscription)
        subscription._invoice_id = invoice_id
        try:
            detach = await self._transport.listen(invoice_id, partial(self._dispatch, invoice_id))
        except Exception:
            self._active.pop(invoice_id, None)
            subscription._invoice_id = None
            self._unbound.add(subscription)
            raise

        if subscription.closed:
            await detach()
            return
        subscription._detach = detach
        logger.debug(f"[BROKER] Subscribed to invoice {invoice_id}")

    def _dispatch(self, invoice_id: str, event: PaymentEvent) -> None:
        subscription = self._active.get(invoice_id)
        if subscription is None:
            logger.debug(f"[BROKER] Dropping event {event.event} for invoice {invoice_id}: no subscriber")
            return
        if not event.is_success:
            logger.info(f"[BROKER] Ignoring event {event.event} for invoice {invoice_id}")
            return
        if subscription._fire(event):
            logger.info(f"[BROKER] Settlement event delivered for invoice {invoice_id}")

    def _on_connection_lost(self, error: Exception | None) -> None:
        reason = str(error) if error else "connection closed"
        logger.error(f"[BROKER] Real-time connection lost: {reason}")
        self._notify_lost(reason)

    def _notify_lost(self, reason: str) -> None:
        for subscription in [*self._active.values(), *self._unbound]:
            subscription._fire(ChannelLost(reason))

    def _forget(self, subscription: Subscription) -> None:
        self._unbound.discard(subscription)
        invoice_id = subscription.invoice_id
        if invoice_id is not None and self._active.get(invoice_id) is subscription:
            del self._active[invoice_id]
