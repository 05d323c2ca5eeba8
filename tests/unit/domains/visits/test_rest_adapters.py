"""Tests for the REST adapters against httpx.MockTransport."""

import json
from decimal import Decimal

import httpx
import pytest

from clinicflow.core.domain.exceptions import EntityNotFoundException, IntegrationException
from clinicflow.domains.visits.application.ports import PaymentLinkContext
from clinicflow.domains.visits.domain.value_objects import (
    GatewayPaymentStatus,
    LabOrderStatus,
    LabResultStatus,
    SettlementStatus,
    VisitStatus,
)
from clinicflow.domains.visits.infrastructure.external import (
    HttpInvoiceRenderer,
    HttpPaymentGateway,
    RestVisitRepository,
)
from tests.utils.builders import LabOrderBuilder

BASE_URL = "http://backend.test/api"

RECORD = {
    "id": 12,
    "code": "PK0012",
    "patientId": 3,
    "patientName": "Trần Thị B",
    "date": "2026-10-18",
    "status": "DANG_KHAM",
    "clinicalExamination": "Sốt nhẹ",
    "invoiceDetails": [
        {"id": 100, "healthPlanId": 1, "healthPlanName": "Khám tổng quát", "price": 200000, "paid": 200000},
        {"id": 101, "healthPlanId": 7, "healthPlanName": "Công thức máu", "price": 150000, "paid": 0, "labOrderIds": [55]},
    ],
}

LAB_ORDER = {
    "id": 55,
    "code": "XN0055",
    "recordId": 12,
    "healthPlanId": 7,
    "healthPlanName": "Công thức máu",
    "status": "CHO_KET_QUA",
    "params": [{"id": "WBC", "name": "Bạch cầu", "unit": "G/L", "range": "4.0 - 10.0"}],
    "labResultResponse": {"id": 9, "status": "NHAP", "paramResults": [{"paramId": "WBC", "value": "8.1"}]},
}


class Backend:
    """Route table for MockTransport; records every request."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], httpx.Response] = {}

    def on(self, method: str, path: str, status: int = 200, data=None, message: str | None = None, **kwargs):
        body = kwargs.pop("json", {"data": data, "message": message})
        self.routes[(method, f"/api{path}")] = httpx.Response(status, json=body, **kwargs)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"message": "not found"})
        return response

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def backend() -> Backend:
    return Backend()


@pytest.fixture
def transport(backend) -> httpx.MockTransport:
    return httpx.MockTransport(backend.handler)


class TestRestVisitRepository:
    @pytest.fixture
    def repo(self, transport) -> RestVisitRepository:
        return RestVisitRepository(BASE_URL, token="secret", transport=transport)

    @pytest.mark.asyncio
    async def test_get_record_maps_wire_shape(self, repo, backend):
        backend.on("GET", "/medical-records/12", data=RECORD)

        record = await repo.get_record("12")

        assert record.id == "12"
        assert record.status == VisitStatus.IN_EXAM
        assert record.clinical_findings == "Sốt nhẹ"
        assert record.visit_date.isoformat() == "2026-10-18"
        assert record.total == Decimal("350000.00")
        assert [line.status for line in record.lines] == [SettlementStatus.PAID, SettlementStatus.UNPAID]
        assert record.line_for_lab_order("55").id == "101"
        assert backend.requests[0].headers["Authorization"] == "Bearer secret"
        await repo.close()

    @pytest.mark.asyncio
    async def test_missing_record(self, repo):
        with pytest.raises(EntityNotFoundException) as exc_info:
            await repo.get_record("404")

        assert exc_info.value.entity_type == "VisitRecord"

    @pytest.mark.asyncio
    async def test_server_error(self, repo, backend):
        backend.on("GET", "/medical-records/12", status=500, json={"message": "database down"})

        with pytest.raises(IntegrationException) as exc_info:
            await repo.get_record("12")

        assert exc_info.value.message == "database down"

    @pytest.mark.asyncio
    async def test_unknown_status_code(self, repo, backend):
        backend.on("GET", "/medical-records/12", data={**RECORD, "status": "LAC_DUONG"})

        with pytest.raises(IntegrationException):
            await repo.get_record("12")

    @pytest.mark.asyncio
    async def test_empty_envelope(self, repo, backend):
        backend.on("GET", "/medical-records/12", data=None, message="no data")

        with pytest.raises(IntegrationException):
            await repo.get_record("12")

    @pytest.mark.asyncio
    async def test_save_record_payload(self, repo, backend):
        backend.on("GET", "/medical-records/12", data=RECORD)
        backend.on("PUT", "/medical-records/12", data={**RECORD, "status": "CHO_XET_NGHIEM"})
        record = await repo.get_record("12")
        record.transition_to(VisitStatus.AWAITING_LAB)
        record.lines[1].apply_payment(Decimal("50000"))

        saved = await repo.save_record(record)

        body = backend.body()
        assert body["status"] == "CHO_XET_NGHIEM"
        assert body["invoiceDetails"][1] == {
            "id": "101",
            "healthPlanId": "7",
            "price": 150000,
            "paid": 50000,
            "labOrderIds": ["55"],
        }
        assert saved.status == VisitStatus.AWAITING_LAB

    @pytest.mark.asyncio
    async def test_save_record_without_body_returns_input(self, repo, backend):
        backend.routes[("PUT", "/api/medical-records/12")] = httpx.Response(204)
        backend.on("GET", "/medical-records/12", data=RECORD)
        record = await repo.get_record("12")

        assert await repo.save_record(record) is record

    @pytest.mark.asyncio
    async def test_service_plan(self, repo, backend):
        backend.on(
            "GET",
            "/services/7",
            data={"id": 7, "name": "Công thức máu", "price": 150000, "roomName": "P.101", "params": LAB_ORDER["params"]},
        )

        plan = await repo.get_service_plan("7")

        assert plan.price == Decimal("150000.00")
        assert plan.room == "P.101"
        assert [p.id for p in plan.parameters] == ["WBC"]

    @pytest.mark.asyncio
    async def test_lab_orders(self, repo, backend):
        backend.on("GET", "/lab-orders/55", data=LAB_ORDER)
        backend.on("GET", "/medical-records/12/lab-orders", data=[LAB_ORDER])

        order = await repo.get_lab_order("55")
        orders = await repo.list_lab_orders("12")

        assert order.status == LabOrderStatus.AWAITING_RESULT
        assert order.result.status == LabResultStatus.DRAFT
        assert order.result.values == {"WBC": "8.1"}
        assert [o.id for o in orders] == ["55"]

    @pytest.mark.asyncio
    async def test_create_lab_order_keeps_plan_parameters(self, repo, backend):
        backend.on("POST", "/lab-orders", data={**LAB_ORDER, "status": "CHO_THUC_HIEN", "params": []})
        order = LabOrderBuilder().for_record("12").with_parameter("WBC", "Bạch cầu").build()

        created = await repo.create_lab_order(order)

        assert created.id == "55"
        assert [p.id for p in created.parameters] == ["WBC"]
        assert backend.body() == {"recordId": "12", "healthPlanId": "HP-LAB", "performingDoctor": None}

    @pytest.mark.asyncio
    async def test_save_lab_order_and_result(self, repo, backend):
        backend.on("PUT", "/lab-orders/status", data=None)
        backend.on("POST", "/lab-results", data={"id": 9, "status": "CHINH_THUC"})
        order = (
            LabOrderBuilder()
            .with_id("55")
            .with_status(LabOrderStatus.AWAITING_RESULT)
            .with_parameter("WBC", "Bạch cầu")
            .build()
        )
        order.finalize(values={"WBC": "8.1"})

        await repo.save_lab_result(order)
        await repo.save_lab_order(order)

        result_body, status_body = backend.body(0), backend.body(1)
        assert result_body["status"] == "CHINH_THUC"
        assert result_body["paramResults"] == [{"paramId": "WBC", "value": "8.1"}]
        assert order.result.id == "9"
        assert status_body == {"id": "55", "status": "HOAN_THANH", "doctorPerformedId": None}


class TestHttpPaymentGateway:
    @pytest.fixture
    def gateway(self, transport) -> HttpPaymentGateway:
        return HttpPaymentGateway(BASE_URL, transport=transport)

    @pytest.mark.asyncio
    async def test_create_payment_link(self, gateway, backend):
        backend.on(
            "POST",
            "/payments/create-link",
            data={"checkoutUrl": "https://pay/1", "orderCode": 987654, "qrCode": "000201...", "invoiceId": 42},
        )

        link = await gateway.create_payment_link(
            Decimal("200000.00"), PaymentLinkContext(description="Phí khám", record_id="12")
        )

        assert (link.order_code, link.invoice_id, link.qr_payload) == ("987654", "42", "000201...")
        body = backend.body()
        assert body["amount"] == 200000
        assert body["medicalRecordId"] == "12"

    @pytest.mark.asyncio
    async def test_invoice_id_falls_back_to_order_code(self, gateway, backend):
        backend.on("POST", "/payments/create-link", data={"orderCode": 987654, "qrCode": "x"})

        link = await gateway.create_payment_link(Decimal("1"), PaymentLinkContext())

        assert link.invoice_id == "987654"

    @pytest.mark.asyncio
    async def test_payment_status(self, gateway, backend):
        backend.on("GET", "/payments/status/987654", data={"orderCode": 987654, "status": "PAID"})

        assert await gateway.get_payment_status("987654") == GatewayPaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_gateway_unreachable(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        gateway = HttpPaymentGateway(BASE_URL, transport=httpx.MockTransport(refuse))

        with pytest.raises(IntegrationException) as exc_info:
            await gateway.create_payment_link(Decimal("1"), PaymentLinkContext())
        assert exc_info.value.service == "payment-gateway"


class TestHttpInvoiceRenderer:
    @pytest.mark.asyncio
    async def test_render_invoice(self, backend, transport):
        backend.routes[("GET", "/api/medical-records/12/invoice/html")] = httpx.Response(
            200, text="<html>hóa đơn</html>", headers={"content-type": "text/html; charset=utf-8"}
        )
        renderer = HttpInvoiceRenderer(BASE_URL, transport=transport)

        invoice = await renderer.render_invoice("12")

        assert invoice.content == "<html>hóa đơn</html>"
        assert invoice.content_type.startswith("text/html")
