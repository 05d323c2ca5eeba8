"""Visit Record Status Value Object.

Wire codes follow the clinic backend (CHO_KHAM, DANG_KHAM, ...).
Legal edges live in the StatusMachine, not here.
"""

from clinicflow.core.domain.value_objects import StatusEnum


class VisitStatus(StatusEnum):
    """Estados del phiếu khám (visit record)."""

    AWAITING_EXAM = "CHO_KHAM"  # Chờ khám
    IN_EXAM = "DANG_KHAM"  # Đang khám
    AWAITING_LAB = "CHO_XET_NGHIEM"  # Chờ xét nghiệm
    COMPLETED = "HOAN_THANH"  # Hoàn thành
    CANCELLED = "HUY"  # Hủy

    @property
    def display_name(self) -> str:
        """Nombre para mostrar en vietnamita."""
        names = {
            "CHO_KHAM": "Chờ khám",
            "DANG_KHAM": "Đang khám",
            "CHO_XET_NGHIEM": "Chờ xét nghiệm",
            "HOAN_THANH": "Hoàn thành",
            "HUY": "Hủy",
        }
        return names.get(self.value, self.value)

    def is_final(self) -> bool:
        """¿Es un estado final (no permite más transiciones)?"""
        return self in (VisitStatus.COMPLETED, VisitStatus.CANCELLED)

    def accepts_lab_orders(self) -> bool:
        """Lab orders may only be attached during or right after the exam."""
        return self in (VisitStatus.IN_EXAM, VisitStatus.AWAITING_LAB)
