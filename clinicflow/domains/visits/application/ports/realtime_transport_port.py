# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Real-time transport port (payment settlement events).
# ============================================================================
"""Real-time Transport Port.

One long-lived connection per operator session carrying settlement
events addressed by invoice id.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

PAYMENT_SUCCESS = "PAYMENT_SUCCESS"


@dataclass(frozen=True)
class PaymentEvent:
    """A message published on an invoice topic."""

    event: str
    invoice_id: str
    message: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.event == PAYMENT_SUCCESS

    @classmethod
    def from_payload(cls, payload: dict[str, Any], invoice_id: str | None = None) -> "PaymentEvent":
        return cls(
            event=str(payload.get("event") or ""),
            invoice_id=str(payload.get("invoiceId") or invoice_id or ""),
            message=str(payload.get("message") or ""),
            payload=dict(payload),
        )


EventListener = Callable[[PaymentEvent], None]
ConnectionLostCallback = Callable[[Exception | None], None]
Detach = Callable[[], Awaitable[None]]


@runtime_checkable
class IRealtimeTransport(Protocol):
    """Interface for the payment event channel.

    Implementations: StompWebSocketTransport
    """

    @property
    def is_connected(self) -> bool:
        ...

    async def connect(self, on_connection_lost: ConnectionLostCallback) -> None:
        """Open the connection. ``on_connection_lost`` fires once if it drops."""
        ...

    async def disconnect(self) -> None:
        ...

    async def listen(self, invoice_id: str, listener: EventListener) -> Detach:
        """Route events for ``invoice_id`` to ``listener``.

        Returns:
            Coroutine function that stops routing.
        """
        ...
