# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Ports (interfaces) for external systems.
# ============================================================================
"""Visits Application Ports.

- IVisitRepository: records, lab orders, results and service plans
- IPaymentGateway: QR payment links and status checks
- IRealtimeTransport: settlement event channel
- IInvoiceRenderer: printable invoice
- ICheckoutLedger: committed checkout memory
"""

from .checkout_ledger_port import ICheckoutLedger
from .invoice_renderer_port import IInvoiceRenderer, RenderedInvoice
from .payment_gateway_port import IPaymentGateway, PaymentLink, PaymentLinkContext
from .realtime_transport_port import (
    PAYMENT_SUCCESS,
    ConnectionLostCallback,
    Detach,
    EventListener,
    IRealtimeTransport,
    PaymentEvent,
)
from .response import ApiEnvelope
from .visit_repository_port import IVisitRepository

__all__ = [
    "ApiEnvelope",
    "ICheckoutLedger",
    "IInvoiceRenderer",
    "RenderedInvoice",
    "IPaymentGateway",
    "PaymentLink",
    "PaymentLinkContext",
    "IRealtimeTransport",
    "PaymentEvent",
    "PAYMENT_SUCCESS",
    "EventListener",
    "ConnectionLostCallback",
    "Detach",
    "IVisitRepository",
]
