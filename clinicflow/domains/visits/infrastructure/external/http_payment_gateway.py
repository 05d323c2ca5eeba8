# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Visits)
# Description: IPaymentGateway over the backend's payment endpoints.
# ============================================================================
"""HTTP Payment Gateway.

The backend fronts the QR gateway: ``POST /payments/create-link`` returns
the QR payload and order code, ``GET /payments/status/{orderCode}`` the
gateway's view of the payment.
"""

import logging
from decimal import Decimal

from ...application.ports import IPaymentGateway, PaymentLink, PaymentLinkContext
from ...domain.value_objects import GatewayPaymentStatus
from .backend_client import BackendClient
from .mappers import to_wire_amount
from .schemas import PaymentLinkData, PaymentStatusData

logger = logging.getLogger(__name__)


class HttpPaymentGateway(BackendClient, IPaymentGateway):
    service_name = "payment-gateway"

    async def create_payment_link(self, amount: Decimal, context: PaymentLinkContext) -> PaymentLink:
        payload = {
            "medicalRecordId": context.record_id,
            "amount": to_wire_amount(amount),
            "description": context.description,
            "returnUrl": context.return_url,
            "cancelUrl": context.cancel_url,
        }
        data = await self._call("POST", "/payments/create-link", PaymentLinkData, json=payload)
        logger.info(f"Payment link created: order {data.order_code}, invoice {data.invoice_id}")
        return PaymentLink(
            order_code=data.order_code,
            invoice_id=data.invoice_id or data.order_code,
            qr_payload=data.qr_code,
            checkout_url=data.checkout_url,
        )

    async def get_payment_status(self, order_code: str) -> GatewayPaymentStatus:
        data = await self._call(
            "GET",
            f"/payments/status/{order_code}",
            PaymentStatusData,
            not_found=("Payment", order_code),
        )
        return self._map(GatewayPaymentStatus.from_string, data.status)
