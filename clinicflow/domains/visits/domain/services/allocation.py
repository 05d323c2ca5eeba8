"""Payment Allocation.

Greedy allocation of a payment across invoice lines in the order the
caller supplies them, each line capped at its own outstanding balance.
Planning is pure; ``AllocationPlan.apply`` is the only mutation and runs
after the whole plan was validated, so a rejected payment touches nothing.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from clinicflow.core.domain.exceptions import ValidationException
from clinicflow.core.domain.value_objects import to_amount

from ..entities.invoice_line import ZERO, InvoiceLine
from ..exceptions import OverpaymentRejected


@dataclass(frozen=True)
class LineAllocation:
    line: InvoiceLine
    amount: Decimal


@dataclass(frozen=True)
class AllocationPlan:
    amount: Decimal
    allocations: tuple[LineAllocation, ...]

    @property
    def remainder(self) -> Decimal:
        return self.amount - sum((a.amount for a in self.allocations), ZERO)

    def apply(self) -> None:
        for allocation in self.allocations:
            if allocation.amount > ZERO:
                allocation.line.apply_payment(allocation.amount)

    def amount_for(self, line: InvoiceLine) -> Decimal:
        return next((a.amount for a in self.allocations if a.line is line), ZERO)


def outstanding_of(lines: Iterable[InvoiceLine]) -> Decimal:
    return sum((line.outstanding for line in lines), ZERO)


def allocate_payment(amount: Decimal | int | float | str, lines: list[InvoiceLine]) -> AllocationPlan:
    """Plan how ``amount`` settles ``lines``.

    Raises:
        ValidationException: If the amount is not positive or lines repeat.
        OverpaymentRejected: If the amount exceeds the total outstanding.
    """
    try:
        amount = to_amount(amount)
    except ValueError as e:
        raise ValidationException(str(e), field="amount") from e
    if amount <= ZERO:
        raise ValidationException("Payment amount must be positive", field="amount")
    if len({id(line) for line in lines}) != len(lines):
        raise ValidationException("The same invoice line was supplied twice", field="lines")

    outstanding = outstanding_of(lines)
    if amount > outstanding:
        raise OverpaymentRejected(amount, outstanding)

    remaining = amount
    allocations = []
    for line in lines:
        share = min(remaining, line.outstanding)
        allocations.append(LineAllocation(line=line, amount=share))
        remaining -= share
    return AllocationPlan(amount=amount, allocations=tuple(allocations))
