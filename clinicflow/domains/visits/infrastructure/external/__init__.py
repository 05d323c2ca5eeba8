# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Visits)
# Description: REST adapters of the clinic backend.
# ============================================================================
"""Visits external adapters."""

from .backend_client import BackendClient
from .http_invoice_renderer import HttpInvoiceRenderer
from .http_payment_gateway import HttpPaymentGateway
from .rest_visit_repository import RestVisitRepository

__all__ = ["BackendClient", "RestVisitRepository", "HttpPaymentGateway", "HttpInvoiceRenderer"]
