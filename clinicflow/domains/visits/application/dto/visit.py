# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Data Transfer Objects for visit operations.
# ============================================================================
"""Visit DTOs."""

from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ...domain.entities import VisitRecord
    from ..ports.invoice_renderer_port import RenderedInvoice


@dataclass(frozen=True)
class VisitDraft:
    """A record not yet persisted: created at first checkout."""

    patient_id: str
    plan_ids: tuple[str, ...]
    patient_name: str = ""
    doctor_id: str | None = None
    symptoms: str = ""
    visit_date: date | None = None


@dataclass(frozen=True)
class ExamFindings:
    """Clinical fields entered by the doctor. ``None`` keeps the stored value."""

    clinical_findings: str | None = None
    diagnosis: str | None = None
    treatment_plan: str | None = None
    symptoms: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class LabResultPayload:
    """Values keyed by lab parameter id."""

    values: dict[str, str] = field(default_factory=dict)
    details: str | None = None
    note: str | None = None
    explanation: str | None = None
    doctor_performing_id: str | None = None


@dataclass(frozen=True)
class VisitCompletion:
    record: "VisitRecord"
    invoice: "RenderedInvoice | None" = None
