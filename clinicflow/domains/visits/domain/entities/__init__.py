from .invoice_line import InvoiceLine, ServiceType
from .lab_order import LabOrder
from .lab_result import LabResult, ParamResult
from .service_plan import ServicePlan
from .visit_record import MANDATORY_CLINICAL_FIELDS, VisitRecord

__all__ = [
    "InvoiceLine",
    "ServiceType",
    "LabOrder",
    "LabResult",
    "ParamResult",
    "ServicePlan",
    "VisitRecord",
    "MANDATORY_CLINICAL_FIELDS",
]
