"""Lab Order and Lab Result Status Value Objects."""

from clinicflow.core.domain.value_objects import StatusEnum


class LabOrderStatus(StatusEnum):
    """Estados de la orden de laboratorio."""

    PENDING = "CHO_THUC_HIEN"  # Chờ thực hiện
    IN_PROGRESS = "DANG_THUC_HIEN"  # Đang thực hiện
    AWAITING_RESULT = "CHO_KET_QUA"  # Chờ kết quả
    DONE = "HOAN_THANH"  # Hoàn thành
    CANCELLED = "HUY_BO"  # Hủy bỏ

    @property
    def display_name(self) -> str:
        names = {
            "CHO_THUC_HIEN": "Chờ thực hiện",
            "DANG_THUC_HIEN": "Đang thực hiện",
            "CHO_KET_QUA": "Chờ kết quả",
            "HOAN_THANH": "Hoàn thành",
            "HUY_BO": "Hủy bỏ",
        }
        return names.get(self.value, self.value)

    def is_final(self) -> bool:
        return self in (LabOrderStatus.DONE, LabOrderStatus.CANCELLED)

    def accepts_result_entry(self) -> bool:
        """Result-entry form is shown only once the order awaits its result."""
        return self == LabOrderStatus.AWAITING_RESULT


class LabResultStatus(StatusEnum):
    """A lab result is a draft until the order is finalized."""

    DRAFT = "NHAP"
    FINAL = "CHINH_THUC"

    def is_final(self) -> bool:
        return self == LabResultStatus.FINAL
