"""Lab Order Entity - Aggregate Root.

A billable diagnostic task owned by exactly one visit record.
"""

from dataclasses import dataclass, field

from clinicflow.core.domain.entities import AggregateRoot
from clinicflow.core.domain.exceptions import InvalidOperationException

from ..events import LabOrderStatusChanged, LabResultSaved
from ..exceptions import MissingRequiredFields
from ..services.status_machine import EntityKind, validate_transition
from ..value_objects import LabOrderStatus, LabParameter
from .lab_result import LabResult, ParamResult


@dataclass(eq=False)
class LabOrder(AggregateRoot[str]):
    """Chỉ định xét nghiệm."""

    record_id: str = ""
    plan_id: str = ""
    plan_name: str = ""
    code: str = ""
    room: str = ""
    doctor_performing_id: str | None = None
    status: LabOrderStatus = LabOrderStatus.PENDING
    parameters: list[LabParameter] = field(default_factory=list)
    result: LabResult | None = None

    def transition_to(self, new_status: LabOrderStatus) -> None:
        """Move to ``new_status`` along an allowed edge.

        Raises:
            InvalidTransition: If the edge is not allowed.
        """
        validate_transition(EntityKind.LAB_ORDER, self.status, new_status)
        previous = self.status
        self.status = new_status
        self.touch()
        self._record_event(
            LabOrderStatusChanged(
                lab_order_id=self.id or "",
                record_id=self.record_id,
                previous=previous.name,
                current=new_status.name,
            )
        )

    def is_active(self) -> bool:
        return self.status != LabOrderStatus.CANCELLED

    def missing_parameters(self, values: dict[str, str]) -> list[str]:
        """Names of required declared parameters without a non-blank value."""
        missing = []
        for param in self.parameters:
            if not param.required:
                continue
            value = values.get(param.id)
            if value is None or not str(value).strip():
                missing.append(param.name or param.id)
        return missing

    def save_draft(
        self,
        values: dict[str, str] | None = None,
        details: str | None = None,
        note: str | None = None,
        explanation: str | None = None,
    ) -> LabResult:
        """Store an intermediate result without finalizing it."""
        if not self.status.accepts_result_entry():
            raise InvalidOperationException("save_lab_result_draft", self.status.name)
        if self.result is None:
            self.result = LabResult()
        self.result.update_draft(values=values, details=details, note=note, explanation=explanation)
        self.touch()
        self._record_event(LabResultSaved(lab_order_id=self.id or "", final=False))
        return self.result

    def finalize(
        self,
        values: dict[str, str],
        details: str | None = None,
        note: str | None = None,
        explanation: str | None = None,
    ) -> LabResult:
        """Complete the order with a full result.

        Every check runs before any mutation, so a rejected payload leaves
        the order in AWAITING_RESULT with its previous draft.

        Raises:
            InvalidTransition: If the order is not AWAITING_RESULT.
            MissingRequiredFields: If a declared parameter lacks a value.
        """
        validate_transition(EntityKind.LAB_ORDER, self.status, LabOrderStatus.DONE)
        missing = self.missing_parameters(values)
        if missing:
            raise MissingRequiredFields(self.id or "", missing)

        result = self.result or LabResult()
        result.update_draft(values=values, details=details, note=note, explanation=explanation)
        result.finalize()
        self.result = result
        self._record_event(LabResultSaved(lab_order_id=self.id or "", final=True))
        self.transition_to(LabOrderStatus.DONE)
        return result

    def param_results(self) -> list[ParamResult]:
        if self.result is None:
            return []
        return self.result.param_results(self.parameters)

    @classmethod
    def create(
        cls,
        record_id: str,
        plan_id: str,
        plan_name: str = "",
        parameters: list[LabParameter] | tuple[LabParameter, ...] = (),
        room: str = "",
    ) -> "LabOrder":
        return cls(
            record_id=record_id,
            plan_id=plan_id,
            plan_name=plan_name,
            parameters=list(parameters),
            room=room,
            status=LabOrderStatus.PENDING,
        )
