# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Persistence port for visit records and lab orders.
# ============================================================================
"""Visit Repository Port.

Remote persistence of records, lab orders, lab results and the service
plan catalogue. Implementations raise ``EntityNotFoundException`` for
unknown ids and ``IntegrationException`` for transport failures.
"""

from typing import Protocol, runtime_checkable

from ...domain.entities import LabOrder, ServicePlan, VisitRecord


@runtime_checkable
class IVisitRepository(Protocol):
    """Interface for visit persistence.

    Implementations: RestVisitRepository
    """

    async def get_record(self, record_id: str) -> VisitRecord:
        ...

    async def create_record(self, record: VisitRecord) -> VisitRecord:
        """Persist a new record with its invoice lines.

        Returns:
            The stored record carrying backend-issued ids and code.
        """
        ...

    async def save_record(self, record: VisitRecord) -> VisitRecord:
        """Persist status, clinical fields and invoice line settlement."""
        ...

    async def get_service_plan(self, plan_id: str) -> ServicePlan:
        ...

    async def get_lab_order(self, lab_order_id: str) -> LabOrder:
        ...

    async def list_lab_orders(self, record_id: str) -> list[LabOrder]:
        ...

    async def create_lab_order(self, order: LabOrder) -> LabOrder:
        ...

    async def save_lab_order(self, order: LabOrder) -> LabOrder:
        """Persist the order status (the status-update side effect)."""
        ...

    async def save_lab_result(self, order: LabOrder) -> LabOrder:
        """Persist ``order.result`` (draft or final)."""
        ...
