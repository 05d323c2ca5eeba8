"""Backend schema <-> domain entity mapping."""

from decimal import Decimal
from typing import Any

from ...domain.entities import InvoiceLine, LabOrder, LabResult, ServicePlan, ServiceType, VisitRecord
from ...domain.value_objects import LabOrderStatus, LabParameter, LabResultStatus, VisitStatus
from .schemas import InvoiceDetailData, LabOrderData, LabParamData, LabResultData, MedicalRecordData, ServiceData


def to_wire_amount(amount: Decimal) -> int | float:
    """JSON number for an amount; whole amounts (VND) stay integers."""
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


def _service_type(value: str) -> ServiceType:
    try:
        return ServiceType(value.upper())
    except ValueError:
        return ServiceType.SINGLE


def _parameter(data: LabParamData) -> LabParameter:
    return LabParameter(
        id=data.id,
        name=data.name,
        unit=data.unit or "",
        range=data.range or "",
        required=data.required,
    )


def line_from_data(data: InvoiceDetailData) -> InvoiceLine:
    return InvoiceLine(
        id=data.id,
        plan_id=data.health_plan_id,
        plan_name=data.health_plan_name,
        price=data.price,
        paid=data.paid,
        description=data.description or "",
        service_type=_service_type(data.service_type),
        lab_order_ids=list(data.lab_order_ids),
    )


def record_from_data(data: MedicalRecordData) -> VisitRecord:
    return VisitRecord(
        id=data.id,
        code=data.code,
        patient_id=data.patient_id,
        patient_name=data.patient_name,
        doctor_id=data.doctor_id,
        visit_date=data.visit_date,
        status=VisitStatus.from_string(data.status),
        symptoms=data.symptoms or "",
        clinical_findings=data.clinical_examination or "",
        diagnosis=data.diagnosis or "",
        treatment_plan=data.treatment_plan or "",
        note=data.note or "",
        cancellation_reason=data.cancel_reason or "",
        lines=[line_from_data(detail) for detail in data.invoice_details],
    )


def record_create_payload(record: VisitRecord) -> dict[str, Any]:
    return {
        "patientId": record.patient_id,
        "doctorId": record.doctor_id,
        "date": record.visit_date.isoformat() if record.visit_date else None,
        "symptoms": record.symptoms,
        "status": record.status.value,
        "invoiceDetails": [
            {
                "healthPlanId": line.plan_id,
                "price": to_wire_amount(line.price),
                "paid": to_wire_amount(line.paid),
                "serviceType": line.service_type.value,
            }
            for line in record.lines
        ],
    }


def record_update_payload(record: VisitRecord) -> dict[str, Any]:
    return {
        "status": record.status.value,
        "symptoms": record.symptoms,
        "clinicalExamination": record.clinical_findings,
        "diagnosis": record.diagnosis,
        "treatmentPlan": record.treatment_plan,
        "note": record.note,
        "cancelReason": record.cancellation_reason or None,
        "invoiceDetails": [
            {
                "id": line.id,
                "healthPlanId": line.plan_id,
                "price": to_wire_amount(line.price),
                "paid": to_wire_amount(line.paid),
                "labOrderIds": list(line.lab_order_ids),
            }
            for line in record.lines
        ],
    }


def plan_from_data(data: ServiceData) -> ServicePlan:
    return ServicePlan(
        id=data.id,
        name=data.name,
        price=data.price,
        service_type=_service_type(data.type),
        parameters=tuple(_parameter(param) for param in data.params),
        room=data.room_name or "",
    )


def result_from_data(data: LabResultData) -> LabResult:
    return LabResult(
        id=data.id,
        status=LabResultStatus.from_string(data.status),
        values={item.param_id: item.value or "" for item in data.param_results},
        details=data.details or "",
        note=data.note or "",
        explanation=data.explanation or "",
    )


def lab_order_from_data(data: LabOrderData) -> LabOrder:
    return LabOrder(
        id=data.id,
        code=data.code,
        record_id=data.record_id,
        plan_id=data.health_plan_id,
        plan_name=data.health_plan_name,
        room=data.room or "",
        doctor_performing_id=data.doctor_performed_id,
        status=LabOrderStatus.from_string(data.status),
        parameters=[_parameter(param) for param in data.params],
        result=result_from_data(data.lab_result_response) if data.lab_result_response else None,
    )


def lab_result_payload(order: LabOrder) -> dict[str, Any]:
    result = order.result or LabResult()
    return {
        "labOrderId": order.id,
        "status": result.status.value,
        "paramResults": [{"paramId": key, "value": value} for key, value in result.values.items()],
        "details": result.details,
        "note": result.note,
        "explanation": result.explanation,
    }
