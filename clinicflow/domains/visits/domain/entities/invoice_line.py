"""Invoice Line Entity.

One billable plan/service entry of a visit record with its own
settlement status.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from clinicflow.core.domain.entities import Entity
from clinicflow.core.domain.value_objects import to_amount

from ..value_objects import SettlementStatus

ZERO = Decimal("0.00")


class ServiceType(str, Enum):
    SINGLE = "SINGLE"  # one lab/exam per line
    MULTIPLE = "MULTIPLE"  # package plan spawning several lab orders


@dataclass(eq=False)
class InvoiceLine(Entity[str]):
    """Dòng hóa đơn (invoice detail)."""

    plan_id: str = ""
    plan_name: str = ""
    price: Decimal = ZERO
    paid: Decimal = ZERO
    description: str = ""
    service_type: ServiceType = ServiceType.SINGLE
    lab_order_ids: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.price = to_amount(self.price)
        self.paid = to_amount(self.paid)
        if self.price < ZERO:
            raise ValueError(f"Invoice line price cannot be negative: {self.price}")
        if not ZERO <= self.paid <= self.price:
            raise ValueError(f"Invoice line paid {self.paid} outside [0, {self.price}]")

    @property
    def outstanding(self) -> Decimal:
        return self.price - self.paid

    @property
    def status(self) -> SettlementStatus:
        if self.paid >= self.price:
            return SettlementStatus.PAID
        if self.paid > ZERO:
            return SettlementStatus.PARTIALLY_PAID
        return SettlementStatus.UNPAID

    def apply_payment(self, amount: Decimal) -> None:
        """Settle part of this line.

        Raises:
            ValueError: If the amount is negative or exceeds the outstanding balance.
        """
        amount = to_amount(amount)
        if amount < ZERO or amount > self.outstanding:
            raise ValueError(f"Cannot apply {amount} to line {self.id} with outstanding {self.outstanding}")
        self.paid += amount
        self.touch()
