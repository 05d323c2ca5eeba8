"""Tests for VisitLifecycleController."""

import asyncio
from decimal import Decimal

import pytest

from clinicflow.core.domain.exceptions import (
    EntityNotFoundException,
    IntegrationException,
    InvalidOperationException,
    ValidationException,
)
from clinicflow.domains.visits.application.dto import (
    CheckoutRequest,
    CheckoutResult,
    ExamFindings,
    LabResultPayload,
    QrCheckout,
    VisitDraft,
)
from clinicflow.domains.visits.application.services import VisitLifecycleController
from clinicflow.domains.visits.domain.events import (
    InvoiceRendered,
    LabOrderStatusChanged,
    PaymentCommitted,
    VisitStatusChanged,
)
from clinicflow.domains.visits.domain.exceptions import (
    IncompletePrerequisites,
    InvalidTransition,
    MissingRequiredFields,
    OverpaymentRejected,
    PostPaymentCommitFailed,
)
from clinicflow.domains.visits.domain.value_objects import (
    LabOrderStatus,
    LabResultStatus,
    PaymentMethod,
    QrSessionState,
    SettlementStatus,
    VisitStatus,
)
from tests.utils.builders import LabOrderBuilder, ServicePlanBuilder, VisitRecordBuilder
from tests.utils.fakes import FakeInvoiceRenderer

FINDINGS = ExamFindings(clinical_findings="Họng đỏ", diagnosis="Viêm họng", treatment_plan="Kháng sinh")


@pytest.fixture
def plans(repository):
    exam = repository.add_plan(ServicePlanBuilder().with_id("HP-KHAM").with_name("Khám tổng quát").with_price(200).build())
    blood = repository.add_plan(
        ServicePlanBuilder()
        .with_id("HP-CTM")
        .with_name("Công thức máu")
        .with_price(150)
        .with_parameter("WBC", "Bạch cầu", "G/L", "4.0 - 10.0")
        .build()
    )
    return exam, blood


def _events(published, kind):
    return [event for event in published if isinstance(event, kind)]


async def _record_in_exam(controller) -> str:
    record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM",)))
    await controller.start_exam(record.id)
    return record.id


class TestRecordLifecycle:
    @pytest.mark.asyncio
    async def test_create_record(self, controller, plans, published):
        record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM", "HP-CTM")))

        assert record.id is not None
        assert record.status == VisitStatus.AWAITING_EXAM
        assert record.total == Decimal("350.00")
        assert [line.plan_id for line in record.lines] == ["HP-KHAM", "HP-CTM"]
        created = _events(published, VisitStatusChanged)
        assert created[0].previous is None

    @pytest.mark.asyncio
    async def test_create_record_requires_plans_and_patient(self, controller, plans):
        with pytest.raises(ValidationException):
            await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=()))
        with pytest.raises(ValidationException):
            await controller.create_record(VisitDraft(patient_id="", plan_ids=("HP-KHAM",)))

    @pytest.mark.asyncio
    async def test_start_exam_is_idempotent(self, controller, plans, repository):
        record_id = await _record_in_exam(controller)

        record = await controller.start_exam(record_id)

        assert record.status == VisitStatus.IN_EXAM
        assert repository.calls.count("save_record") == 1

    @pytest.mark.asyncio
    async def test_record_examination_requires_exam(self, controller, plans):
        record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM",)))

        with pytest.raises(InvalidOperationException):
            await controller.record_examination(record.id, FINDINGS)

    @pytest.mark.asyncio
    async def test_events_published_after_save(self, controller, plans, repository, published):
        record_id = await _record_in_exam(controller)
        published.clear()
        repository.fail_on.add("save_record")

        with pytest.raises(IntegrationException):
            await controller.record_examination(record_id, FINDINGS)
        with pytest.raises(IntegrationException):
            await controller.cancel_visit(record_id)

        assert published == []
        assert repository.records[record_id].status == VisitStatus.IN_EXAM

    @pytest.mark.asyncio
    async def test_unknown_record(self, controller):
        with pytest.raises(EntityNotFoundException):
            await controller.start_exam("MR-404")


class TestCompleteVisit:
    @pytest.mark.asyncio
    async def test_completes_from_in_exam_and_renders_once(self, controller, plans, renderer, published):
        record_id = await _record_in_exam(controller)
        await controller.record_examination(record_id, FINDINGS)

        completion = await controller.complete_visit(record_id)

        assert completion.record.status == VisitStatus.COMPLETED
        assert completion.invoice is not None
        assert renderer.rendered == [record_id]
        transitions = [(e.previous, e.current) for e in _events(published, VisitStatusChanged)]
        assert ("IN_EXAM", "AWAITING_LAB") in transitions
        assert ("AWAITING_LAB", "COMPLETED") in transitions

        with pytest.raises(InvalidTransition):
            await controller.complete_visit(record_id)
        assert renderer.rendered == [record_id]

    @pytest.mark.asyncio
    async def test_missing_fields_and_pending_orders(self, controller, plans):
        record_id = await _record_in_exam(controller)
        order = await controller.attach_lab_order(record_id, "HP-CTM")

        with pytest.raises(IncompletePrerequisites) as exc_info:
            await controller.complete_visit(record_id)

        assert exc_info.value.missing_fields == ["clinical_findings", "diagnosis", "treatment_plan"]
        assert exc_info.value.pending_lab_orders == [order.code]

    @pytest.mark.asyncio
    async def test_cancelled_lab_order_does_not_block(self, controller, plans):
        record_id = await _record_in_exam(controller)
        order = await controller.attach_lab_order(record_id, "HP-CTM")
        await controller.record_examination(record_id, FINDINGS)
        await controller.cancel_lab_order(order.id)

        completion = await controller.complete_visit(record_id)

        assert completion.record.status == VisitStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cannot_complete_awaiting_exam(self, controller, plans):
        record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM",)))

        with pytest.raises(InvalidTransition):
            await controller.complete_visit(record.id)

    @pytest.mark.asyncio
    async def test_render_failure_still_completes(self, repository, orchestrator, ledger, plans):
        controller = VisitLifecycleController(repository, orchestrator, FakeInvoiceRenderer(fail=True), ledger)
        record_id = await _record_in_exam(controller)
        await controller.record_examination(record_id, FINDINGS)

        completion = await controller.complete_visit(record_id)

        assert completion.invoice is None
        assert repository.records[record_id].status == VisitStatus.COMPLETED


class TestCancelVisit:
    @pytest.mark.asyncio
    async def test_cancels_unfinished_lab_orders(self, controller, plans, repository):
        record_id = await _record_in_exam(controller)
        order = await controller.attach_lab_order(record_id, "HP-CTM")
        done = repository.add_lab_order(
            LabOrderBuilder().for_record(record_id).with_status(LabOrderStatus.DONE).build()
        )

        record = await controller.cancel_visit(record_id, "bệnh nhân về")

        assert record.status == VisitStatus.CANCELLED
        assert record.cancellation_reason == "bệnh nhân về"
        assert repository.lab_orders[order.id].status == LabOrderStatus.CANCELLED
        assert repository.lab_orders[done.id].status == LabOrderStatus.DONE

    @pytest.mark.asyncio
    async def test_terminal_record_cannot_be_cancelled(self, controller, plans):
        record_id = await _record_in_exam(controller)
        await controller.cancel_visit(record_id)

        with pytest.raises(InvalidTransition):
            await controller.cancel_visit(record_id)


class TestLabOrders:
    @pytest.mark.asyncio
    async def test_attach_bills_line_and_moves_record(self, controller, plans, repository, published):
        record_id = await _record_in_exam(controller)

        order = await controller.attach_lab_order(record_id, "HP-CTM")

        record = repository.records[record_id]
        assert order.status == LabOrderStatus.PENDING
        assert record.status == VisitStatus.AWAITING_LAB
        line = record.line_for_lab_order(order.id)
        assert line is not None and line.price == Decimal("150.00")
        assert _events(published, LabOrderStatusChanged)[-1].current == "PENDING"

        second = await controller.attach_lab_order(record_id, "HP-CTM")
        assert second.id != order.id
        assert len(repository.records[record_id].lines) == 3

    @pytest.mark.asyncio
    async def test_attach_requires_exam(self, controller, plans):
        record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM",)))

        with pytest.raises(InvalidOperationException):
            await controller.attach_lab_order(record.id, "HP-CTM")

    @pytest.mark.asyncio
    async def test_result_entry_flow(self, controller, plans, repository):
        record_id = await _record_in_exam(controller)
        order = await controller.attach_lab_order(record_id, "HP-CTM")
        await controller.begin_lab_order(order.id, doctor_performing_id="BS-2")

        draft = await controller.record_lab_result(order.id, LabResultPayload(values={"WBC": "9"}))
        assert draft.status == LabOrderStatus.AWAITING_RESULT
        assert draft.result.status == LabResultStatus.DRAFT

        with pytest.raises(MissingRequiredFields):
            await controller.finalize_lab_order(order.id, LabResultPayload(values={"WBC": ""}))
        stored = repository.lab_orders[order.id]
        assert stored.status == LabOrderStatus.AWAITING_RESULT
        assert stored.result.values == {"WBC": "9"}

        done = await controller.finalize_lab_order(order.id, LabResultPayload(values={"WBC": "11"}))
        assert done.status == LabOrderStatus.DONE
        assert done.result.status == LabResultStatus.FINAL
        assert done.doctor_performing_id == "BS-2"

    @pytest.mark.asyncio
    async def test_result_requires_started_order(self, controller, plans):
        record_id = await _record_in_exam(controller)
        order = await controller.attach_lab_order(record_id, "HP-CTM")

        with pytest.raises(InvalidTransition):
            await controller.record_lab_result(order.id, LabResultPayload(values={"WBC": "9"}))


class TestCashCheckout:
    @pytest.mark.asyncio
    async def test_pay_existing_record(self, controller, plans, repository, renderer, published):
        record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM", "HP-CTM")))

        result = await controller.checkout(
            CheckoutRequest(method=PaymentMethod.CASH, amount=Decimal("250"), record_id=record.id, checkout_id="c-1")
        )

        assert isinstance(result, CheckoutResult)
        assert not result.replayed
        assert result.receipt.payment_key == "cash:c-1"
        stored = repository.records[record.id]
        assert [line.status for line in stored.lines] == [SettlementStatus.PAID, SettlementStatus.PARTIALLY_PAID]
        assert renderer.rendered == [record.id]
        assert len(_events(published, PaymentCommitted)) == 1
        assert len(_events(published, InvoiceRendered)) == 1

    @pytest.mark.asyncio
    async def test_replay_returns_first_receipt(self, controller, plans, repository, renderer):
        record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM",)))
        request = CheckoutRequest(method=PaymentMethod.CASH, amount=Decimal("100"), record_id=record.id, checkout_id="c-1")

        first = await controller.checkout(request)
        second = await controller.checkout(request)

        assert second.replayed
        assert second.receipt == first.receipt
        assert repository.records[record.id].paid == Decimal("100.00")
        assert renderer.rendered == [record.id]

    @pytest.mark.asyncio
    async def test_line_ids_choose_order(self, controller, plans, repository):
        record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM", "HP-CTM")))
        exam_line, lab_line = record.lines

        await controller.checkout(
            CheckoutRequest(
                method=PaymentMethod.CASH,
                amount=Decimal("150"),
                record_id=record.id,
                line_ids=(lab_line.id,),
                checkout_id="c-1",
            )
        )

        stored = repository.records[record.id]
        assert stored.find_line(lab_line.id).status == SettlementStatus.PAID
        assert stored.find_line(exam_line.id).status == SettlementStatus.UNPAID

    @pytest.mark.asyncio
    async def test_overpayment_touches_nothing_and_allows_retry(self, controller, plans, repository):
        record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM",)))
        request = CheckoutRequest(method=PaymentMethod.CASH, amount=Decimal("900"), record_id=record.id, checkout_id="c-1")

        with pytest.raises(OverpaymentRejected):
            await controller.checkout(request)
        assert repository.records[record.id].paid == Decimal("0.00")

        result = await controller.checkout(
            CheckoutRequest(method=PaymentMethod.CASH, amount=Decimal("200"), record_id=record.id, checkout_id="c-1")
        )
        assert result.receipt.amount == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_draft_checkout_creates_record(self, controller, plans, repository):
        result = await controller.checkout(
            CheckoutRequest(
                method=PaymentMethod.CASH,
                amount=Decimal("200"),
                draft=VisitDraft(patient_id="BN-2", plan_ids=("HP-KHAM",)),
                checkout_id="c-1",
            )
        )

        stored = repository.records[result.receipt.record_id]
        assert stored.patient_id == "BN-2"
        assert stored.paid == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_draft_overpayment_creates_nothing(self, controller, plans, repository):
        with pytest.raises(OverpaymentRejected):
            await controller.checkout(
                CheckoutRequest(
                    method=PaymentMethod.CASH,
                    amount=Decimal("999"),
                    draft=VisitDraft(patient_id="BN-2", plan_ids=("HP-KHAM",)),
                    checkout_id="c-1",
                )
            )

        assert repository.records == {}

    @pytest.mark.asyncio
    async def test_draft_retry_pays_record_from_failed_attempt(self, controller, plans, repository, renderer):
        request = CheckoutRequest(
            method=PaymentMethod.CASH,
            amount=Decimal("200"),
            draft=VisitDraft(patient_id="BN-2", plan_ids=("HP-KHAM",)),
            checkout_id="c-1",
        )
        repository.fail_on = {"save_record"}

        with pytest.raises(IntegrationException):
            await controller.checkout(request)
        assert len(repository.records) == 1
        (created_id,) = repository.records
        assert repository.records[created_id].paid == Decimal("0.00")

        repository.fail_on = set()
        result = await controller.checkout(request)

        assert len(repository.records) == 1
        assert result.receipt.record_id == created_id
        assert repository.records[created_id].paid == Decimal("200.00")
        assert renderer.rendered == [created_id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("checkout_id", [None, ""])
    async def test_cash_requires_checkout_id(self, controller, plans, repository, checkout_id):
        record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM",)))

        with pytest.raises(ValidationException):
            await controller.checkout(
                CheckoutRequest(
                    method=PaymentMethod.CASH, amount=Decimal("100"), record_id=record.id, checkout_id=checkout_id
                )
            )

        assert repository.records[record.id].paid == Decimal("0.00")
        assert "save_record" not in repository.calls

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"record_id": "MR-1", "draft": VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM",))},
            {"draft": VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM",)), "line_ids": ("IL-1",)},
        ],
    )
    async def test_request_shape_validated(self, controller, kwargs):
        with pytest.raises(ValidationException):
            await controller.checkout(CheckoutRequest(method=PaymentMethod.CASH, amount=Decimal("1"), **kwargs))

    @pytest.mark.asyncio
    async def test_foreign_line_rejected(self, controller, plans, repository):
        record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM",)))

        with pytest.raises(ValidationException):
            await controller.checkout(
                CheckoutRequest(
                    method=PaymentMethod.CASH,
                    amount=Decimal("1"),
                    record_id=record.id,
                    line_ids=("IL-X",),
                    checkout_id="c-1",
                )
            )

    @pytest.mark.asyncio
    async def test_cancelled_record_not_payable(self, controller, repository):
        record = repository.add_record(VisitRecordBuilder().with_status(VisitStatus.CANCELLED).with_line(100).build())

        with pytest.raises(InvalidOperationException):
            await controller.checkout(
                CheckoutRequest(method=PaymentMethod.CASH, amount=Decimal("1"), record_id=record.id, checkout_id="c-1")
            )


class TestQrCheckout:
    @pytest.mark.asyncio
    async def test_draft_record_created_only_on_settlement(self, controller, plans, repository, transport, renderer):
        checkout = await controller.checkout(
            CheckoutRequest(
                method=PaymentMethod.QR,
                amount=Decimal("200"),
                draft=VisitDraft(patient_id="BN-3", plan_ids=("HP-KHAM",)),
                description="Phí khám",
            )
        )
        assert isinstance(checkout, QrCheckout)
        session = checkout.session
        assert repository.records == {}

        transport.publish(session.invoice_id)
        outcome = await session.await_settlement()

        assert outcome.settled
        receipt = outcome.result.receipt
        assert receipt.method == PaymentMethod.QR
        assert receipt.payment_key == f"qr:{session.order_code}"
        assert receipt.invoice_id == session.invoice_id
        assert repository.records[receipt.record_id].paid == Decimal("200.00")
        assert renderer.rendered == [receipt.record_id]

    @pytest.mark.asyncio
    async def test_cancelled_qr_creates_nothing(self, controller, plans, repository):
        checkout = await controller.checkout(
            CheckoutRequest(
                method=PaymentMethod.QR,
                amount=Decimal("200"),
                draft=VisitDraft(patient_id="BN-3", plan_ids=("HP-KHAM",)),
            )
        )

        assert await checkout.session.cancel() is True
        outcome = await checkout.session.await_settlement()

        assert outcome.state == QrSessionState.CANCELLED
        assert repository.records == {}

    @pytest.mark.asyncio
    async def test_commit_failure_surfaces_and_keeps_lock(self, controller, plans, repository, transport, ledger):
        record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM",)))
        checkout = await controller.checkout(
            CheckoutRequest(method=PaymentMethod.QR, amount=Decimal("200"), record_id=record.id)
        )
        repository.fail_on.add("save_record")

        transport.publish(checkout.session.invoice_id)
        with pytest.raises(PostPaymentCommitFailed):
            await checkout.session.await_settlement()

        is_duplicate, receipt = await ledger.check_and_lock(f"qr:{checkout.session.order_code}")
        assert is_duplicate and receipt is None

    @pytest.mark.asyncio
    async def test_concurrent_awaiters_commit_once(self, controller, plans, repository, transport):
        record = await controller.create_record(VisitDraft(patient_id="BN-1", plan_ids=("HP-KHAM",)))
        checkout = await controller.checkout(
            CheckoutRequest(method=PaymentMethod.QR, amount=Decimal("200"), record_id=record.id)
        )

        transport.publish(checkout.session.invoice_id)
        outcomes = await asyncio.gather(*(checkout.session.await_settlement() for _ in range(3)))

        assert all(outcome.settled for outcome in outcomes)
        assert repository.records[record.id].paid == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_reconcile_payment(self, controller, gateway):
        gateway.mark_paid("1001")

        status = await controller.reconcile_payment("1001")

        assert status.money_moved()
