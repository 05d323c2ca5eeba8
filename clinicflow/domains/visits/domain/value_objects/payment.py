"""Payment Value Objects.

Settlement status of invoice lines, payment methods, gateway-reported
payment status and the QR session state machine.
"""

from clinicflow.core.domain.value_objects import StatusEnum


class SettlementStatus(StatusEnum):
    """Settlement status of a single invoice line."""

    UNPAID = "CHUA_THANH_TOAN"
    PARTIALLY_PAID = "THANH_TOAN_MOT_PHAN"
    PAID = "DA_THANH_TOAN"


class PaymentMethod(StatusEnum):
    """How the money is collected."""

    CASH = "TIEN_MAT"
    QR = "CHUYEN_KHOAN"

    def is_synchronous(self) -> bool:
        """Cash is attested by the operator at the counter, QR settles later."""
        return self == PaymentMethod.CASH


class GatewayPaymentStatus(StatusEnum):
    """Payment status as reported by the gateway's status endpoint."""

    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    def money_moved(self) -> bool:
        return self == GatewayPaymentStatus.PAID


class QrSessionState(StatusEnum):
    """States of one in-flight QR payment attempt.

    CREATED -> AWAITING_GATEWAY_LINK -> AWAITING_SETTLEMENT
            -> SETTLED | CANCELLED | TIMED_OUT
    """

    CREATED = "CREATED"
    AWAITING_GATEWAY_LINK = "AWAITING_GATEWAY_LINK"
    AWAITING_SETTLEMENT = "AWAITING_SETTLEMENT"
    SETTLED = "SETTLED"
    CANCELLED = "CANCELLED"
    TIMED_OUT = "TIMED_OUT"

    def is_final(self) -> bool:
        return self in (QrSessionState.SETTLED, QrSessionState.CANCELLED, QrSessionState.TIMED_OUT)
