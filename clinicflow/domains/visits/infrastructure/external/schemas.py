# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Visits)
# Description: Wire schemas of the clinic REST backend.
# ============================================================================
"""Backend payload schemas.

camelCase on the wire, snake_case in Python. Numeric ids are coerced to
strings so the domain never sees the backend's id type.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BackendModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class InvoiceDetailData(BackendModel):
    id: str | None = None
    health_plan_id: str = ""
    health_plan_name: str = ""
    price: Decimal = Decimal("0")
    paid: Decimal = Decimal("0")
    description: str | None = None
    service_type: str = "SINGLE"
    lab_order_ids: list[str] = Field(default_factory=list)


class MedicalRecordData(BackendModel):
    id: str
    code: str = ""
    patient_id: str = ""
    patient_name: str = ""
    doctor_id: str | None = None
    visit_date: date | None = Field(None, alias="date")
    status: str
    symptoms: str | None = None
    clinical_examination: str | None = None
    diagnosis: str | None = None
    treatment_plan: str | None = None
    note: str | None = None
    cancel_reason: str | None = None
    invoice_details: list[InvoiceDetailData] = Field(default_factory=list)


class LabParamData(BackendModel):
    id: str
    name: str = ""
    unit: str | None = None
    range: str | None = None
    required: bool = True


class ServiceData(BackendModel):
    id: str
    code: str = ""
    name: str = ""
    price: Decimal = Decimal("0")
    type: str = "SINGLE"
    room_name: str | None = None
    params: list[LabParamData] = Field(default_factory=list)


class ParamValueData(BackendModel):
    param_id: str
    value: str | None = None


class LabResultData(BackendModel):
    id: str | None = None
    status: str = "NHAP"
    param_results: list[ParamValueData] = Field(default_factory=list)
    details: str | None = None
    note: str | None = None
    explanation: str | None = None


class LabOrderData(BackendModel):
    id: str
    code: str = ""
    record_id: str = ""
    health_plan_id: str = ""
    health_plan_name: str = ""
    room: str | None = None
    doctor_performed_id: str | None = None
    status: str
    params: list[LabParamData] = Field(default_factory=list)
    lab_result_response: LabResultData | None = None


class PaymentLinkData(BackendModel):
    checkout_url: str | None = None
    order_code: str
    qr_code: str = ""
    invoice_id: str | None = None


class PaymentStatusData(BackendModel):
    order_code: str | None = None
    status: str
    amount: Decimal | None = None
    transaction_id: str | None = None
