"""Visit Record Entity - Aggregate Root.

One patient encounter: clinical fields, status and billing.
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal

from clinicflow.core.domain.entities import AggregateRoot

from ..events import VisitStatusChanged
from ..services.status_machine import EntityKind, validate_transition
from ..value_objects import VisitStatus
from .invoice_line import ZERO, InvoiceLine

# Must be non-empty before a visit can be completed
MANDATORY_CLINICAL_FIELDS: tuple[str, ...] = ("clinical_findings", "diagnosis", "treatment_plan")


@dataclass(eq=False)
class VisitRecord(AggregateRoot[str]):
    """Phiếu khám - Aggregate Root.

    ``total`` and ``paid`` are derived from the invoice lines, so the
    invariant ``0 <= paid <= total`` follows from each line's own bounds.
    """

    code: str = ""
    patient_id: str = ""
    patient_name: str = ""
    doctor_id: str | None = None
    visit_date: date | None = None
    status: VisitStatus = VisitStatus.AWAITING_EXAM

    # Clinical fields
    symptoms: str = ""
    clinical_findings: str = ""
    diagnosis: str = ""
    treatment_plan: str = ""
    note: str = ""

    lines: list[InvoiceLine] = field(default_factory=list)

    cancelled_at: datetime | None = None
    cancellation_reason: str = ""

    # Billing
    @property
    def total(self) -> Decimal:
        return sum((line.price for line in self.lines), ZERO)

    @property
    def paid(self) -> Decimal:
        return sum((line.paid for line in self.lines), ZERO)

    @property
    def outstanding(self) -> Decimal:
        return self.total - self.paid

    def find_line(self, line_id: str) -> InvoiceLine | None:
        return next((line for line in self.lines if line.id == line_id), None)

    def line_for_lab_order(self, lab_order_id: str) -> InvoiceLine | None:
        return next((line for line in self.lines if lab_order_id in line.lab_order_ids), None)

    def add_line(self, line: InvoiceLine) -> None:
        self.lines.append(line)
        self.touch()

    # Status
    def transition_to(self, new_status: VisitStatus) -> None:
        """Move to ``new_status`` along an allowed edge.

        Raises:
            InvalidTransition: If the edge is not allowed.
        """
        validate_transition(EntityKind.VISIT_RECORD, self.status, new_status)
        previous = self.status
        self.status = new_status
        if new_status == VisitStatus.CANCELLED:
            self.cancelled_at = datetime.now(UTC)
        self.touch()
        self._record_event(
            VisitStatusChanged(record_id=self.id or "", previous=previous.name, current=new_status.name)
        )

    def cancel(self, reason: str = "") -> None:
        self.transition_to(VisitStatus.CANCELLED)
        self.cancellation_reason = reason

    # Clinical
    def record_findings(
        self,
        clinical_findings: str | None = None,
        diagnosis: str | None = None,
        treatment_plan: str | None = None,
        symptoms: str | None = None,
        note: str | None = None,
    ) -> None:
        """Update clinical fields; ``None`` leaves a field untouched."""
        updates = {
            "clinical_findings": clinical_findings,
            "diagnosis": diagnosis,
            "treatment_plan": treatment_plan,
            "symptoms": symptoms,
            "note": note,
        }
        for name, value in updates.items():
            if value is not None:
                setattr(self, name, value)
        self.touch()

    def missing_clinical_fields(self) -> list[str]:
        return [name for name in MANDATORY_CLINICAL_FIELDS if not str(getattr(self, name) or "").strip()]

    # Factory methods
    @classmethod
    def create(
        cls,
        patient_id: str,
        lines: list[InvoiceLine] | None = None,
        patient_name: str = "",
        doctor_id: str | None = None,
        symptoms: str = "",
        visit_date: date | None = None,
    ) -> "VisitRecord":
        """Factory method for a new record awaiting examination."""
        return cls(
            patient_id=patient_id,
            patient_name=patient_name,
            doctor_id=doctor_id,
            symptoms=symptoms,
            visit_date=visit_date or date.today(),
            status=VisitStatus.AWAITING_EXAM,
            lines=list(lines or []),
        )
