"""Visit Lifecycle Exceptions.

Validation errors (InvalidTransition, IncompletePrerequisites,
OverpaymentRejected, DuplicateSubscription, MissingRequiredFields) are
recoverable: the caller corrects its input and tries again.

PostPaymentCommitFailed and Undeliverable are not. Money may have moved,
so they must reach a human who reconciles with the gateway.
"""

from decimal import Decimal
from typing import Any

from clinicflow.core.domain.exceptions import DomainException


class InvalidTransition(DomainException):
    """Requested status edge is not in the allowed graph."""

    def __init__(self, entity_kind: str, current: Any, requested: Any, message: str | None = None):
        self.entity_kind = entity_kind
        self.current = current
        self.requested = requested
        current_code = getattr(current, "name", str(current))
        requested_code = getattr(requested, "name", str(requested))
        super().__init__(
            message or f"{entity_kind}: transition {current_code} -> {requested_code} is not allowed",
            "INVALID_TRANSITION",
            {"entity_kind": entity_kind, "current": current_code, "requested": requested_code},
        )


class IncompletePrerequisites(DomainException):
    """A visit cannot be completed yet.

    Carries the specific missing items so the UI can point at them.
    """

    def __init__(
        self,
        record_id: str,
        missing_fields: list[str] | None = None,
        pending_lab_orders: list[str] | None = None,
    ):
        self.record_id = record_id
        self.missing_fields = list(missing_fields or [])
        self.pending_lab_orders = list(pending_lab_orders or [])
        parts = []
        if self.missing_fields:
            parts.append(f"empty clinical fields: {', '.join(self.missing_fields)}")
        if self.pending_lab_orders:
            parts.append(f"lab orders not done: {', '.join(self.pending_lab_orders)}")
        super().__init__(
            f"Visit {record_id} cannot be completed ({'; '.join(parts)})",
            "INCOMPLETE_PREREQUISITES",
            {
                "record_id": record_id,
                "missing_fields": self.missing_fields,
                "pending_lab_orders": self.pending_lab_orders,
            },
        )


class OverpaymentRejected(DomainException):
    """Cash amount exceeds the outstanding balance of the supplied lines."""

    def __init__(self, amount: Decimal, outstanding: Decimal):
        self.amount = amount
        self.outstanding = outstanding
        super().__init__(
            f"Payment of {amount} exceeds outstanding balance {outstanding}",
            "OVERPAYMENT_REJECTED",
            {"amount": str(amount), "outstanding": str(outstanding)},
        )


class MissingRequiredFields(DomainException):
    """A lab order cannot be finalized while declared parameters lack values."""

    def __init__(self, lab_order_id: str, missing_parameters: list[str]):
        self.lab_order_id = lab_order_id
        self.missing_parameters = list(missing_parameters)
        super().__init__(
            f"Lab order {lab_order_id} is missing values for: {', '.join(self.missing_parameters)}",
            "MISSING_REQUIRED_FIELDS",
            {"lab_order_id": lab_order_id, "missing_parameters": self.missing_parameters},
        )


class DuplicateSubscription(DomainException):
    """A second subscription for an invoice id that already has an active one."""

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(
            f"An active payment subscription already exists for invoice {invoice_id}",
            "DUPLICATE_SUBSCRIPTION",
            {"invoice_id": invoice_id},
        )


class PostPaymentCommitFailed(DomainException):
    """Money settled but creating/finalizing the record failed afterwards.

    Never retried automatically: a blind retry after partial failure
    risks creating the record twice.
    """

    recoverable = False

    def __init__(self, invoice_id: str | None, order_code: str | None, cause: Exception | None = None):
        self.invoice_id = invoice_id
        self.order_code = order_code
        self.cause = cause
        details: dict[str, Any] = {"invoice_id": invoice_id, "order_code": order_code}
        if cause is not None:
            details["cause"] = str(cause)
        super().__init__(
            f"Payment {order_code} (invoice {invoice_id}) settled but the visit record could not be "
            f"committed; reconcile manually",
            "POST_PAYMENT_COMMIT_FAILED",
            details,
        )


class Undeliverable(DomainException):
    """The real-time channel dropped before a settlement event could arrive.

    The payment itself may still have succeeded server-side.
    """

    recoverable = False

    def __init__(self, invoice_id: str | None, order_code: str | None = None, reason: str | None = None):
        self.invoice_id = invoice_id
        self.order_code = order_code
        self.reason = reason
        super().__init__(
            f"Payment events for invoice {invoice_id} can no longer be delivered"
            + (f": {reason}" if reason else "")
            + "; check the payment status out-of-band",
            "UNDELIVERABLE",
            {"invoice_id": invoice_id, "order_code": order_code, "reason": reason},
        )
