# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Visits)
# Description: IVisitRepository over the clinic REST backend.
# ============================================================================
"""REST Visit Repository."""

import logging

from ...application.ports import IVisitRepository
from ...domain.entities import LabOrder, ServicePlan, VisitRecord
from .backend_client import BackendClient
from .mappers import (
    lab_order_from_data,
    lab_result_payload,
    plan_from_data,
    record_create_payload,
    record_from_data,
    record_update_payload,
    result_from_data,
)
from .schemas import LabOrderData, LabResultData, MedicalRecordData, ServiceData

logger = logging.getLogger(__name__)


class RestVisitRepository(BackendClient, IVisitRepository):
    """Visit persistence through ``/medical-records``, ``/lab-orders``,
    ``/lab-results`` and ``/services``."""

    # =========================================================================
    # Medical records
    # =========================================================================

    async def get_record(self, record_id: str) -> VisitRecord:
        data = await self._call(
            "GET",
            f"/medical-records/{record_id}",
            MedicalRecordData,
            not_found=("VisitRecord", record_id),
        )
        return self._map(record_from_data, data)

    async def create_record(self, record: VisitRecord) -> VisitRecord:
        data = await self._call("POST", "/medical-records", MedicalRecordData, json=record_create_payload(record))
        logger.info(f"Created medical record {data.id} ({data.code})")
        return self._map(record_from_data, data)

    async def save_record(self, record: VisitRecord) -> VisitRecord:
        data = await self._call_optional(
            "PUT",
            f"/medical-records/{record.id}",
            MedicalRecordData,
            json=record_update_payload(record),
            not_found=("VisitRecord", record.id or ""),
        )
        if data is None:
            return record
        return self._map(record_from_data, data)

    # =========================================================================
    # Catalogue
    # =========================================================================

    async def get_service_plan(self, plan_id: str) -> ServicePlan:
        data = await self._call("GET", f"/services/{plan_id}", ServiceData, not_found=("ServicePlan", plan_id))
        return self._map(plan_from_data, data)

    # =========================================================================
    # Lab orders
    # =========================================================================

    async def get_lab_order(self, lab_order_id: str) -> LabOrder:
        data = await self._call(
            "GET",
            f"/lab-orders/{lab_order_id}",
            LabOrderData,
            not_found=("LabOrder", lab_order_id),
        )
        return self._map(lab_order_from_data, data)

    async def list_lab_orders(self, record_id: str) -> list[LabOrder]:
        items = await self._call(
            "GET",
            f"/medical-records/{record_id}/lab-orders",
            list[LabOrderData],
            not_found=("VisitRecord", record_id),
        )
        return [self._map(lab_order_from_data, item) for item in items]

    async def create_lab_order(self, order: LabOrder) -> LabOrder:
        payload = {
            "recordId": order.record_id,
            "healthPlanId": order.plan_id,
            "performingDoctor": order.doctor_performing_id,
        }
        data = await self._call("POST", "/lab-orders", LabOrderData, json=payload)
        logger.info(f"Created lab order {data.id} for record {order.record_id}")
        created = self._map(lab_order_from_data, data)
        if not created.parameters:
            created.parameters = list(order.parameters)
        return created

    async def save_lab_order(self, order: LabOrder) -> LabOrder:
        payload = {
            "id": order.id,
            "status": order.status.value,
            "doctorPerformedId": order.doctor_performing_id,
        }
        await self._request("PUT", "/lab-orders/status", json=payload, not_found=("LabOrder", order.id or ""))
        return order

    async def save_lab_result(self, order: LabOrder) -> LabOrder:
        data = await self._call_optional("POST", "/lab-results", LabResultData, json=lab_result_payload(order))
        if data is not None and order.result is not None and order.result.id is None:
            order.result.id = self._map(result_from_data, data).id
        return order
