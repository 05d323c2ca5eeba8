"""Lab Parameter Value Object.

A declared parameter of a lab service (e.g. "Glucose", "mmol/L",
"3.9 - 6.4") and the classification of a measured value against its
reference range.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from clinicflow.core.domain.value_objects import StatusEnum, ValueObject

_NUMBER = r"[-+]?\d+(?:[.,]\d+)?"
_BETWEEN = re.compile(rf"^\s*({_NUMBER})\s*(?:-|–|~|to)\s*({_NUMBER})\s*$")
_UPPER = re.compile(rf"^\s*(?:<=?|≤)\s*({_NUMBER})\s*$")
_LOWER = re.compile(rf"^\s*(?:>=?|≥)\s*({_NUMBER})\s*$")


class RangeStatus(StatusEnum):
    """Where a measured value falls relative to its reference range."""

    HIGH = "CAO"
    LOW = "THAP"
    NORMAL = "TRUNG_BINH"
    UNDETERMINED = "CHUA_XAC_DINH"


def _to_decimal(text: str) -> Decimal | None:
    try:
        return Decimal(text.strip().replace(",", "."))
    except (InvalidOperation, AttributeError):
        return None


@dataclass(frozen=True)
class ReferenceRange(ValueObject):
    """Numeric bounds parsed from free-text reference ranges."""

    low: Decimal | None = None
    high: Decimal | None = None

    def _validate(self) -> None:
        if self.low is not None and self.high is not None and self.low > self.high:
            raise ValueError(f"Invalid reference range: {self.low} > {self.high}")

    @classmethod
    def parse(cls, text: str | None) -> "ReferenceRange | None":
        """Parse "3.5 - 5.0", "< 200" or "> 40". Returns None for qualitative ranges."""
        if not text:
            return None
        if match := _BETWEEN.match(text):
            low, high = _to_decimal(match.group(1)), _to_decimal(match.group(2))
            if low is not None and high is not None and low <= high:
                return cls(low=low, high=high)
            return None
        if match := _UPPER.match(text):
            return cls(high=_to_decimal(match.group(1)))
        if match := _LOWER.match(text):
            return cls(low=_to_decimal(match.group(1)))
        return None

    def classify(self, value: Decimal) -> RangeStatus:
        if self.low is not None and value < self.low:
            return RangeStatus.LOW
        if self.high is not None and value > self.high:
            return RangeStatus.HIGH
        return RangeStatus.NORMAL


@dataclass(frozen=True)
class LabParameter(ValueObject):
    """Declared parameter of a lab service."""

    id: str
    name: str
    unit: str = ""
    range: str = ""
    required: bool = True

    def _validate(self) -> None:
        if not self.id:
            raise ValueError("Lab parameter id is required")

    def classify(self, value: str | None) -> RangeStatus:
        """Classify a measured value. Non-numeric values or ranges are UNDETERMINED."""
        if value is None or not str(value).strip():
            return RangeStatus.UNDETERMINED
        reference = ReferenceRange.parse(self.range)
        measured = _to_decimal(str(value))
        if reference is None or measured is None:
            return RangeStatus.UNDETERMINED
        return reference.classify(measured)
