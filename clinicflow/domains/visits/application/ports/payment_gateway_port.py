# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Payment gateway port (QR payment links).
# ============================================================================
"""Payment Gateway Port."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable

from ...domain.value_objects import GatewayPaymentStatus


@dataclass(frozen=True)
class PaymentLinkContext:
    """What the gateway prints next to the QR code."""

    description: str = ""
    record_id: str | None = None
    return_url: str | None = None
    cancel_url: str | None = None


@dataclass(frozen=True)
class PaymentLink:
    """A created gateway payment.

    ``invoice_id`` is the key settlement events are published under,
    ``order_code`` the key the gateway's status endpoint answers for.
    """

    order_code: str
    invoice_id: str
    qr_payload: str
    checkout_url: str | None = None


@runtime_checkable
class IPaymentGateway(Protocol):
    """Interface for the QR payment gateway.

    Implementations: HttpPaymentGateway
    """

    async def create_payment_link(self, amount: Decimal, context: PaymentLinkContext) -> PaymentLink:
        """Create a payment for ``amount``.

        Raises:
            IntegrationException: If the gateway cannot be reached or refuses.
        """
        ...

    async def get_payment_status(self, order_code: str) -> GatewayPaymentStatus:
        ...
