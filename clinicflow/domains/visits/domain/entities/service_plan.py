"""Service Plan reference data (health plan / lab service catalogue entry)."""

from dataclasses import dataclass, field
from decimal import Decimal

from clinicflow.core.domain.value_objects import ValueObject, to_amount

from ..value_objects import LabParameter
from .invoice_line import InvoiceLine, ServiceType


@dataclass(frozen=True)
class ServicePlan(ValueObject):
    """Read-only catalogue entry billed through an invoice line."""

    id: str
    name: str
    price: Decimal
    service_type: ServiceType = ServiceType.SINGLE
    parameters: tuple[LabParameter, ...] = field(default_factory=tuple)
    room: str = ""

    def _validate(self) -> None:
        object.__setattr__(self, "price", to_amount(self.price))
        if self.price < 0:
            raise ValueError("Service plan price cannot be negative")

    def to_invoice_line(self) -> InvoiceLine:
        return InvoiceLine(
            plan_id=self.id,
            plan_name=self.name,
            price=self.price,
            service_type=self.service_type,
        )
