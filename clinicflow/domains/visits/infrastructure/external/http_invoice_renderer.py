"""Printable invoice fetched from the backend as HTML."""

from ...application.ports import IInvoiceRenderer, RenderedInvoice
from .backend_client import BackendClient


class HttpInvoiceRenderer(BackendClient, IInvoiceRenderer):
    service_name = "invoice-export"

    async def render_invoice(self, record_id: str) -> RenderedInvoice:
        response = await self._request(
            "GET",
            f"/medical-records/{record_id}/invoice/html",
            not_found=("VisitRecord", record_id),
        )
        return RenderedInvoice(
            record_id=record_id,
            content=response.text,
            content_type=response.headers.get("content-type", "text/html"),
        )
