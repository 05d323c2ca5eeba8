# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Cash and QR payment flows.
# ============================================================================
"""Payment Orchestrator.

Cash is attested by the operator and settles synchronously. QR settles
asynchronously through a ``QrSession``. Both allocate with the same
greedy rule over the lines in the order the caller passes them.
"""

from decimal import Decimal

from clinicflow.core.shared.logger import get_logger

from ...domain.entities import InvoiceLine, VisitRecord
from ...domain.services.allocation import AllocationPlan, allocate_payment
from ...domain.value_objects import GatewayPaymentStatus, PaymentMethod
from ..dto.checkout import Receipt, ReceiptLine
from ..ports.payment_gateway_port import IPaymentGateway, PaymentLinkContext
from .qr_session import CommitCallback, QrSession
from .subscription_broker import EventSubscriptionBroker


class PaymentOrchestrator:
    """Runs payments against a visit record's invoice lines."""

    def __init__(
        self,
        gateway: IPaymentGateway,
        broker: EventSubscriptionBroker,
        settlement_timeout: float | None = 600.0,
        return_url: str | None = None,
        cancel_url: str | None = None,
        currency: str = "VND",
    ):
        self._gateway = gateway
        self._broker = broker
        self._settlement_timeout = settlement_timeout
        self._return_url = return_url
        self._cancel_url = cancel_url
        self._currency = currency
        self._log = get_logger(__name__, component="payment_orchestrator")

    def plan(self, amount: Decimal | int | str, lines: list[InvoiceLine]) -> AllocationPlan:
        """Validate a payment without touching any line.

        Raises:
            ValidationException: If the amount is not positive.
            OverpaymentRejected: If the amount exceeds the outstanding balance.
        """
        return allocate_payment(amount, lines)

    def pay_cash(
        self,
        amount: Decimal | int | str,
        lines: list[InvoiceLine],
        record: VisitRecord,
        payment_key: str,
    ) -> Receipt:
        """Settle ``lines`` of ``record`` with cash.

        The record is mutated in memory only; the caller persists it.
        Rejected payments leave every line untouched.
        """
        receipt = self.settle(amount, lines, record, PaymentMethod.CASH, payment_key)
        self._log.info(
            f"[CASH] Paid {receipt.amount} on record {record.id}",
            record_id=record.id,
            payment_key=payment_key,
        )
        return receipt

    def settle(
        self,
        amount: Decimal | int | str,
        lines: list[InvoiceLine],
        record: VisitRecord,
        method: PaymentMethod,
        payment_key: str,
        order_code: str | None = None,
        invoice_id: str | None = None,
    ) -> Receipt:
        plan = allocate_payment(amount, lines)
        plan.apply()
        return Receipt(
            record_id=record.id or "",
            record_code=record.code,
            method=method,
            amount=plan.amount,
            currency=self._currency,
            lines=tuple(
                ReceiptLine(
                    line_id=a.line.id,
                    plan_name=a.line.plan_name,
                    price=a.line.price,
                    allocated=a.amount,
                    paid=a.line.paid,
                    status=a.line.status,
                )
                for a in plan.allocations
            ),
            total=record.total,
            paid=record.paid,
            outstanding=record.outstanding,
            payment_key=payment_key,
            order_code=order_code,
            invoice_id=invoice_id,
        )

    async def begin_qr_payment(
        self,
        amount: Decimal | int | str,
        lines: list[InvoiceLine],
        commit: CommitCallback,
        description: str = "",
        record_id: str | None = None,
    ) -> QrSession:
        """Open a QR session for ``amount``.

        The amount is validated against ``lines`` before the gateway is
        called; ``commit`` runs once when the payment settles.

        Raises:
            ValidationException: If the amount is not positive.
            OverpaymentRejected: If the amount exceeds the outstanding balance.
            IntegrationException: If the gateway cannot create the payment.
        """
        plan = allocate_payment(amount, lines)
        context = PaymentLinkContext(
            description=description,
            record_id=record_id,
            return_url=self._return_url,
            cancel_url=self._cancel_url,
        )
        session = QrSession(
            amount=plan.amount,
            gateway=self._gateway,
            broker=self._broker,
            commit=commit,
            context=context,
            settlement_timeout=self._settlement_timeout,
        )
        await session.open()
        self._log.info(
            f"[QR] Payment link created for {plan.amount}",
            order_code=session.order_code,
            invoice_id=session.invoice_id,
        )
        return session

    async def reconcile(self, order_code: str) -> GatewayPaymentStatus:
        """Ask the gateway where a payment stands (operator-driven)."""
        status = await self._gateway.get_payment_status(order_code)
        self._log.info(f"[RECONCILE] Gateway reports {status.value}", order_code=order_code)
        return status

    async def close(self) -> None:
        """Drop the real-time connection; waiting QR sessions become undeliverable."""
        await self._broker.disconnect()
