from .lab_parameter import LabParameter, RangeStatus, ReferenceRange
from .lab_status import LabOrderStatus, LabResultStatus
from .payment import GatewayPaymentStatus, PaymentMethod, QrSessionState, SettlementStatus
from .visit_status import VisitStatus

__all__ = [
    "VisitStatus",
    "LabOrderStatus",
    "LabResultStatus",
    "SettlementStatus",
    "PaymentMethod",
    "GatewayPaymentStatus",
    "QrSessionState",
    "LabParameter",
    "RangeStatus",
    "ReferenceRange",
]
