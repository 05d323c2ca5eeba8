# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Invoice rendering port.
# ============================================================================
"""Invoice Renderer Port."""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class RenderedInvoice:
    record_id: str
    content: str
    content_type: str = "text/html"


@runtime_checkable
class IInvoiceRenderer(Protocol):
    """Produces the printable invoice for a record.

    Implementations: HttpInvoiceRenderer
    """

    async def render_invoice(self, record_id: str) -> RenderedInvoice:
        ...
