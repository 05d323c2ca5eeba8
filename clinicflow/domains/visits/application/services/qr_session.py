# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: One in-flight QR payment attempt.
# ============================================================================
"""QR Payment Session.

Settlement, operator cancellation, the settlement timeout and a dropped
channel all compete for one ``CompletionSlot``; whichever resolves it
first decides the outcome and every later signal is ignored.

Cancellation asks the gateway first: when the payment already settled
server-side the session resolves SETTLED, never CANCELLED. Settlement
runs the commit exactly once, however many callers await it.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Literal, Union

from clinicflow.core.domain.exceptions import IntegrationException, InvalidOperationException
from clinicflow.core.shared.logger import get_logger

from ...domain.exceptions import PostPaymentCommitFailed, Undeliverable
from ...domain.value_objects import QrSessionState
from ..dto.checkout import CheckoutResult, QrOutcome
from ..ports.payment_gateway_port import IPaymentGateway, PaymentLink, PaymentLinkContext
from ..ports.realtime_transport_port import PaymentEvent
from .completion_slot import CompletionSlot
from .subscription_broker import ChannelLost, EventSubscriptionBroker, Subscription, SubscriptionSignal


@dataclass(frozen=True)
class Settled:
    event: PaymentEvent | None
    source: Literal["event", "status_check"] = "event"


@dataclass(frozen=True)
class Cancelled:
    pass


@dataclass(frozen=True)
class TimedOut:
    pass


QrSignal = Union[Settled, Cancelled, TimedOut, ChannelLost]


@dataclass(frozen=True)
class SettlementContext:
    """Handed to the commit callback once money has moved."""

    order_code: str
    invoice_id: str
    amount: Decimal
    event: PaymentEvent | None


CommitCallback = Callable[[SettlementContext], Awaitable[CheckoutResult]]

_FINAL_STATE = {
    Settled: QrSessionState.SETTLED,
    Cancelled: QrSessionState.CANCELLED,
    TimedOut: QrSessionState.TIMED_OUT,
    ChannelLost: QrSessionState.TIMED_OUT,
}


class QrSession:
    """A QR payment from link creation to its terminal state."""

    def __init__(
        self,
        *,
        amount: Decimal,
        gateway: IPaymentGateway,
        broker: EventSubscriptionBroker,
        commit: CommitCallback,
        context: PaymentLinkContext,
        settlement_timeout: float | None = 600.0,
    ):
        self.amount = amount
        self._gateway = gateway
        self._broker = broker
        self._commit = commit
        self._context = context
        self._settlement_timeout = settlement_timeout

        self._state = QrSessionState.CREATED
        self._slot: CompletionSlot[QrSignal] = CompletionSlot()
        self._subscription: Subscription | None = None
        self._link: PaymentLink | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._commit_task: asyncio.Task | None = None
        self._log = get_logger(__name__, component="qr_session")

    @property
    def state(self) -> QrSessionState:
        return self._state

    @property
    def link(self) -> PaymentLink | None:
        return self._link

    @property
    def order_code(self) -> str | None:
        return self._link.order_code if self._link else None

    @property
    def invoice_id(self) -> str | None:
        return self._link.invoice_id if self._link else None

    @property
    def qr_payload(self) -> str | None:
        return self._link.qr_payload if self._link else None

    async def open(self) -> "QrSession":
        """Subscribe, create the gateway payment, then bind its invoice id.

        Raises:
            IntegrationException: If the gateway cannot create the payment.
        """
        if self._state != QrSessionState.CREATED:
            raise InvalidOperationException("open_qr_session", self._state.name)
        self._loop = asyncio.get_running_loop()

        subscription = await self._broker.subscribe()
        self._subscription = subscription
        self._state = QrSessionState.AWAITING_GATEWAY_LINK
        try:
            link = await self._gateway.create_payment_link(self.amount, self._context)
            await self._broker.bind(subscription, link.invoice_id)
        except Exception as e:
            self._state = QrSessionState.CANCELLED
            await subscription.unsubscribe()
            self._log.error(f"[QR] Could not open payment session: {e}")
            raise

        self._link = link
        self._log = self._log.bind(order_code=link.order_code, invoice_id=link.invoice_id)
        self._state = QrSessionState.AWAITING_SETTLEMENT
        self._slot.add_done_callback(self._on_resolved)
        subscription.on_signal(self._on_subscription_signal)
        if self._settlement_timeout and not self._slot.resolved:
            self._timer = self._loop.call_later(self._settlement_timeout, self._on_timeout)
        self._log.info(f"[QR] Awaiting settlement of {self.amount}")
        return self

    async def await_settlement(self) -> QrOutcome:
        """Wait for the terminal outcome.

        Raises:
            PostPaymentCommitFailed: Money moved but the commit failed.
            Undeliverable: The channel dropped before any outcome.
        """
        if self._state in (QrSessionState.CREATED, QrSessionState.AWAITING_GATEWAY_LINK):
            raise InvalidOperationException("await_settlement", self._state.name)
        signal = await self._slot.wait()
        if isinstance(signal, Settled):
            result = await asyncio.shield(self._ensure_commit_task(signal))
            return self._outcome(result)
        if isinstance(signal, ChannelLost):
            self._log.error(f"[QR] Channel lost before settlement, check the payment out-of-band: {signal.reason}")
            raise Undeliverable(self.invoice_id, self.order_code, signal.reason)
        return self._outcome()

    async def cancel(self) -> bool:
        """Ask to abandon the payment.

        Returns:
            True if the session ended CANCELLED. False if it settled (the
            gateway already reports PAID, or the event won the race) or
            ended otherwise.
        """
        if not self._slot.resolved and self._state != QrSessionState.AWAITING_SETTLEMENT:
            raise InvalidOperationException("cancel_qr_payment", self._state.name)
        if self._slot.resolved:
            return self._state == QrSessionState.CANCELLED

        status = None
        try:
            status = await self._gateway.get_payment_status(self.order_code or "")
        except IntegrationException as e:
            self._log.warning(f"[QR] Status check before cancel failed: {e}")

        if status is not None and status.money_moved():
            if self._slot.try_resolve(Settled(event=None, source="status_check")):
                self._log.warning("[QR] Cancel requested but the gateway reports PAID; settling instead")
            return False
        self._slot.try_resolve(Cancelled())
        return self._state == QrSessionState.CANCELLED

    def _on_subscription_signal(self, signal: SubscriptionSignal) -> None:
        if isinstance(signal, PaymentEvent):
            self._slot.try_resolve(Settled(event=signal))
        else:
            self._slot.try_resolve(signal)

    def _on_timeout(self) -> None:
        if self._slot.try_resolve(TimedOut()):
            self._log.warning(f"[QR] No settlement within {self._settlement_timeout}s")

    def _on_resolved(self, signal: QrSignal) -> None:
        self._state = _FINAL_STATE[type(signal)]
        self._log.info(f"[QR] Session resolved: {self._state.name}", session_state=self._state.name)
        self._call_in_loop(lambda: self._after_resolution(signal))

    def _after_resolution(self, signal: QrSignal) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if isinstance(signal, Settled):
            self._ensure_commit_task(signal)
        else:
            asyncio.ensure_future(self._release())

    def _ensure_commit_task(self, signal: Settled) -> asyncio.Task:
        if self._commit_task is None:
            self._commit_task = asyncio.ensure_future(self._run_commit(signal))
            self._commit_task.add_done_callback(_retrieve_exception)
        return self._commit_task

    async def _run_commit(self, signal: Settled) -> CheckoutResult:
        await self._release()
        context = SettlementContext(
            order_code=self.order_code or "",
            invoice_id=self.invoice_id or "",
            amount=self.amount,
            event=signal.event,
        )
        try:
            result = await self._commit(context)
        except Exception as e:
            self._log.critical(f"[QR] Payment settled but commit failed, manual reconciliation needed: {e}")
            raise PostPaymentCommitFailed(self.invoice_id, self.order_code, cause=e) from e
        self._log.info(
            f"[QR] Payment committed (source={signal.source})",
            record_id=result.receipt.record_id,
            payment_key=result.receipt.payment_key,
        )
        return result

    async def _release(self) -> None:
        if self._subscription is not None:
            await self._subscription.unsubscribe()

    def _call_in_loop(self, fn: Callable[[], None]) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is None or running is self._loop:
            fn()
        else:
            self._loop.call_soon_threadsafe(fn)

    def _outcome(self, result: CheckoutResult | None = None) -> QrOutcome:
        return QrOutcome(
            state=self._state,
            order_code=self.order_code,
            invoice_id=self.invoice_id,
            result=result,
        )


def _retrieve_exception(task: asyncio.Task) -> None:
    # Already logged by the session; keeps asyncio from warning about it
    if not task.cancelled():
        task.exception()
