"""Lab Result Entity.

Draft values for a lab order's declared parameters. Drafts may be saved
any number of times; finalization is one-way.
"""

from dataclasses import dataclass, field

from clinicflow.core.domain.entities import Entity

from ..exceptions import InvalidTransition
from ..services.status_machine import EntityKind, validate_transition
from ..value_objects import LabParameter, LabResultStatus, RangeStatus


@dataclass(frozen=True)
class ParamResult:
    """A measured value classified against its parameter's reference range."""

    param_id: str
    name: str
    value: str | None
    unit: str
    range: str
    range_status: RangeStatus


@dataclass(eq=False)
class LabResult(Entity[str]):
    status: LabResultStatus = LabResultStatus.DRAFT
    values: dict[str, str] = field(default_factory=dict)
    details: str = ""
    note: str = ""
    explanation: str = ""

    def update_draft(
        self,
        values: dict[str, str] | None = None,
        details: str | None = None,
        note: str | None = None,
        explanation: str | None = None,
    ) -> None:
        """Replace the draft content. The last saved draft wins."""
        if self.status.is_final():
            raise InvalidTransition(EntityKind.LAB_RESULT.value, self.status, LabResultStatus.DRAFT)
        if values is not None:
            self.values = {str(k): v for k, v in values.items()}
        if details is not None:
            self.details = details
        if note is not None:
            self.note = note
        if explanation is not None:
            self.explanation = explanation
        self.touch()

    def finalize(self) -> None:
        validate_transition(EntityKind.LAB_RESULT, self.status, LabResultStatus.FINAL)
        self.status = LabResultStatus.FINAL
        self.touch()

    def param_results(self, parameters: list[LabParameter] | tuple[LabParameter, ...]) -> list[ParamResult]:
        results = []
        for param in parameters:
            value = self.values.get(param.id)
            results.append(
                ParamResult(
                    param_id=param.id,
                    name=param.name,
                    value=value,
                    unit=param.unit,
                    range=param.range,
                    range_status=param.classify(value),
                )
            )
        return results
