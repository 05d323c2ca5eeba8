"""Visit Domain Events.

Published after persistence succeeds. ``invalidates`` names the query
keys the UI should refetch.
"""

from dataclasses import dataclass
from decimal import Decimal

from clinicflow.core.domain.events import DomainEvent


@dataclass(frozen=True)
class VisitStatusChanged(DomainEvent):
    record_id: str
    previous: str | None
    current: str

    @property
    def invalidates(self) -> tuple[str, ...]:
        return ("medical-records", f"medical-record:{self.record_id}")


@dataclass(frozen=True)
class LabOrderStatusChanged(DomainEvent):
    lab_order_id: str
    record_id: str
    previous: str | None
    current: str

    @property
    def invalidates(self) -> tuple[str, ...]:
        return ("lab-orders", f"lab-order:{self.lab_order_id}", f"medical-record:{self.record_id}")


@dataclass(frozen=True)
class LabResultSaved(DomainEvent):
    lab_order_id: str
    final: bool

    @property
    def invalidates(self) -> tuple[str, ...]:
        return (f"lab-order:{self.lab_order_id}", f"lab-result:{self.lab_order_id}")


@dataclass(frozen=True)
class PaymentCommitted(DomainEvent):
    record_id: str
    method: str
    amount: Decimal
    payment_key: str

    @property
    def invalidates(self) -> tuple[str, ...]:
        return ("medical-records", f"medical-record:{self.record_id}", "invoices")


@dataclass(frozen=True)
class InvoiceRendered(DomainEvent):
    record_id: str
    payment_key: str
