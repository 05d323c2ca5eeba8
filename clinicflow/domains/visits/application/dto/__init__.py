# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Data Transfer Objects exports.
# ============================================================================
"""Application DTOs for the Visits domain."""

from .checkout import CheckoutRequest, CheckoutResult, QrCheckout, QrOutcome, Receipt, ReceiptLine
from .visit import ExamFindings, LabResultPayload, VisitCompletion, VisitDraft

__all__ = [
    # Request DTOs
    "CheckoutRequest",
    "VisitDraft",
    "ExamFindings",
    "LabResultPayload",
    # Result DTOs
    "Receipt",
    "ReceiptLine",
    "CheckoutResult",
    "QrCheckout",
    "QrOutcome",
    "VisitCompletion",
]
