# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Data Transfer Objects for checkout and payment.
# ============================================================================
"""Checkout DTOs.

``Receipt`` is a pydantic model because the checkout ledger stores it
(JSON in Redis) and hands it back on replay.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from ...domain.value_objects import PaymentMethod, QrSessionState, SettlementStatus
from .visit import VisitDraft

if TYPE_CHECKING:
    from ..ports.invoice_renderer_port import RenderedInvoice
    from ..services.qr_session import QrSession

# =============================================================================
# Request DTOs
# =============================================================================


@dataclass(frozen=True)
class CheckoutRequest:
    """Request DTO for paying a visit.

    Exactly one of ``record_id`` (existing record) or ``draft`` (record
    created as part of the payment) is set. ``line_ids`` narrows the
    lines being paid for an existing record, in allocation order; by
    default every line is paid in record order. ``checkout_id`` is required
    for cash: repeating a request with the same id replays its receipt, and
    a retry after a failure reuses any record the first attempt created.
    """

    method: PaymentMethod
    amount: Decimal
    record_id: str | None = None
    draft: VisitDraft | None = None
    line_ids: tuple[str, ...] | None = None
    checkout_id: str | None = None
    description: str = ""


# =============================================================================
# Response DTOs
# =============================================================================


class ReceiptLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    line_id: str | None
    plan_name: str
    price: Decimal
    allocated: Decimal
    paid: Decimal
    status: SettlementStatus


class Receipt(BaseModel):
    """Proof of a committed payment."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    record_code: str = ""
    method: PaymentMethod
    amount: Decimal
    currency: str = "VND"
    lines: tuple[ReceiptLine, ...] = ()
    total: Decimal
    paid: Decimal
    outstanding: Decimal
    payment_key: str
    order_code: str | None = None
    invoice_id: str | None = None
    issued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class CheckoutResult:
    """A committed checkout. ``replayed`` is True when the ledger returned
    an earlier receipt and nothing was paid or printed again."""

    receipt: Receipt
    invoice: "RenderedInvoice | None" = None
    replayed: bool = False


@dataclass(frozen=True)
class QrCheckout:
    """A started QR payment; the caller shows ``session.qr_payload`` and
    awaits ``session.await_settlement()``."""

    session: "QrSession"


@dataclass(frozen=True)
class QrOutcome:
    state: QrSessionState
    order_code: str | None = None
    invoice_id: str | None = None
    result: CheckoutResult | None = None

    @property
    def settled(self) -> bool:
        return self.state == QrSessionState.SETTLED
