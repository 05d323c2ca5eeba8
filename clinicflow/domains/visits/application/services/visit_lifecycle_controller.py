# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Operator-facing facade over a visit's lifecycle.
# ============================================================================
"""Visit Lifecycle Controller.

Every operation validates against the status graph, persists through the
repository and only then publishes domain events, so listeners never see
a change that was not stored.

Usage:
    controller = VisitLifecycleController(repository, orchestrator, renderer, ledger)

    record = await controller.create_record(draft)
    await controller.start_exam(record.id)
    order = await controller.attach_lab_order(record.id, plan_id)
    ...
    result = await controller.checkout(CheckoutRequest(method=PaymentMethod.CASH, ...))
"""

from __future__ import annotations

import logging

from clinicflow.core.domain.events import DomainEvent, DomainEventPublisher
from clinicflow.core.domain.exceptions import DomainException, InvalidOperationException, ValidationException

from ...domain.entities import InvoiceLine, LabOrder, VisitRecord
from ...domain.events import InvoiceRendered, LabOrderStatusChanged, PaymentCommitted, VisitStatusChanged
from ...domain.exceptions import IncompletePrerequisites
from ...domain.services.status_machine import EntityKind, validate_transition
from ...domain.value_objects import GatewayPaymentStatus, LabOrderStatus, PaymentMethod, VisitStatus
from ..dto.checkout import CheckoutRequest, CheckoutResult, QrCheckout, Receipt
from ..dto.visit import ExamFindings, LabResultPayload, VisitCompletion, VisitDraft
from ..ports.checkout_ledger_port import ICheckoutLedger
from ..ports.invoice_renderer_port import IInvoiceRenderer, RenderedInvoice
from ..ports.visit_repository_port import IVisitRepository
from .payment_orchestrator import PaymentOrchestrator
from .qr_session import SettlementContext

logger = logging.getLogger(__name__)


class VisitLifecycleController:
    """Drives a visit from registration through payment and completion."""

    def __init__(
        self,
        repository: IVisitRepository,
        orchestrator: PaymentOrchestrator,
        renderer: IInvoiceRenderer,
        ledger: ICheckoutLedger,
        publisher: DomainEventPublisher | None = None,
    ) -> None:
        self._repository = repository
        self._orchestrator = orchestrator
        self._renderer = renderer
        self._ledger = ledger
        self._publisher = publisher or DomainEventPublisher()

    @property
    def publisher(self) -> DomainEventPublisher:
        return self._publisher

    # =========================================================================
    # Records
    # =========================================================================

    async def create_record(self, draft: VisitDraft) -> VisitRecord:
        """Register a visit awaiting examination, billed for ``draft.plan_ids``."""
        lines = await self._lines_for(draft)
        return await self._create_record(draft, lines)

    async def start_exam(self, record_id: str) -> VisitRecord:
        """AWAITING_EXAM -> IN_EXAM. A record already IN_EXAM is returned as is."""
        record = await self._repository.get_record(record_id)
        if record.status == VisitStatus.IN_EXAM:
            logger.debug(f"Record {record_id} already in exam")
            return record
        record.transition_to(VisitStatus.IN_EXAM)
        return await self._save_record(record)

    async def record_examination(self, record_id: str, findings: ExamFindings) -> VisitRecord:
        record = await self._repository.get_record(record_id)
        if record.status not in (VisitStatus.IN_EXAM, VisitStatus.AWAITING_LAB):
            raise InvalidOperationException("record_examination", record.status.name)
        record.record_findings(
            clinical_findings=findings.clinical_findings,
            diagnosis=findings.diagnosis,
            treatment_plan=findings.treatment_plan,
            symptoms=findings.symptoms,
            note=findings.note,
        )
        return await self._save_record(record)

    async def complete_visit(self, record_id: str) -> VisitCompletion:
        """Finish the visit and print its invoice.

        A record still IN_EXAM (no lab orders) walks IN_EXAM -> AWAITING_LAB
        -> COMPLETED so both edges are validated.

        Raises:
            InvalidTransition: If the record cannot reach COMPLETED.
            IncompletePrerequisites: If clinical fields are empty or lab
                orders are not done.
        """
        record = await self._repository.get_record(record_id)
        if record.status != VisitStatus.IN_EXAM:
            validate_transition(EntityKind.VISIT_RECORD, record.status, VisitStatus.COMPLETED)

        orders = await self._repository.list_lab_orders(record_id)
        pending = [
            order.code or order.id or ""
            for order in orders
            if order.status not in (LabOrderStatus.DONE, LabOrderStatus.CANCELLED)
        ]
        missing = record.missing_clinical_fields()
        if pending or missing:
            raise IncompletePrerequisites(record_id, missing_fields=missing, pending_lab_orders=pending)

        if record.status == VisitStatus.IN_EXAM:
            record.transition_to(VisitStatus.AWAITING_LAB)
        record.transition_to(VisitStatus.COMPLETED)
        stored = await self._save_record(record)
        logger.info(f"Visit {record_id} completed")

        invoice = await self._render_invoice(record_id, f"visit:{record_id}:completed")
        return VisitCompletion(record=stored, invoice=invoice)

    async def cancel_visit(self, record_id: str, reason: str = "") -> VisitRecord:
        """Cancel the record and every lab order that has not finished."""
        record = await self._repository.get_record(record_id)
        record.cancel(reason)
        orders = await self._repository.list_lab_orders(record_id)
        stored = await self._save_record(record)
        for order in orders:
            if not order.status.is_final():
                order.transition_to(LabOrderStatus.CANCELLED)
                await self._save_lab_order(order)
        logger.info(f"Visit {record_id} cancelled: {reason or 'no reason given'}")
        return stored

    # =========================================================================
    # Lab orders
    # =========================================================================

    async def attach_lab_order(self, record_id: str, plan_id: str) -> LabOrder:
        """Order a lab service and bill it on a new invoice line.

        The first order moves the record IN_EXAM -> AWAITING_LAB.
        """
        record = await self._repository.get_record(record_id)
        if not record.status.accepts_lab_orders():
            raise InvalidOperationException("attach_lab_order", record.status.name)
        plan = await self._repository.get_service_plan(plan_id)

        order = await self._repository.create_lab_order(
            LabOrder.create(
                record_id=record_id,
                plan_id=plan.id,
                plan_name=plan.name,
                parameters=plan.parameters,
                room=plan.room,
            )
        )
        line = plan.to_invoice_line()
        line.lab_order_ids.append(order.id or "")
        record.add_line(line)
        if record.status == VisitStatus.IN_EXAM:
            record.transition_to(VisitStatus.AWAITING_LAB)
        await self._save_record(record)
        await self._publish(
            LabOrderStatusChanged(
                lab_order_id=order.id or "",
                record_id=record_id,
                previous=None,
                current=order.status.name,
            )
        )
        logger.info(f"Lab order {order.id} ({plan.name}) attached to record {record_id}")
        return order

    async def begin_lab_order(self, lab_order_id: str, doctor_performing_id: str | None = None) -> LabOrder:
        """PENDING -> IN_PROGRESS."""
        order = await self._repository.get_lab_order(lab_order_id)
        order.transition_to(LabOrderStatus.IN_PROGRESS)
        if doctor_performing_id:
            order.doctor_performing_id = doctor_performing_id
        return await self._save_lab_order(order)

    async def record_lab_result(self, lab_order_id: str, payload: LabResultPayload) -> LabOrder:
        """Save a draft result. Callable repeatedly; the last draft wins."""
        order = await self._enter_result_entry(await self._repository.get_lab_order(lab_order_id))
        if payload.doctor_performing_id:
            order.doctor_performing_id = payload.doctor_performing_id
        order.save_draft(
            values=payload.values,
            details=payload.details,
            note=payload.note,
            explanation=payload.explanation,
        )
        events = order.pull_domain_events()
        stored = await self._repository.save_lab_result(order)
        await self._publish_all(events)
        return stored

    async def finalize_lab_order(self, lab_order_id: str, payload: LabResultPayload) -> LabOrder:
        """Finalize the result and move the order to DONE.

        Raises:
            MissingRequiredFields: If a declared parameter has no value. The
                order stays AWAITING_RESULT.
        """
        order = await self._enter_result_entry(await self._repository.get_lab_order(lab_order_id))
        if payload.doctor_performing_id:
            order.doctor_performing_id = payload.doctor_performing_id
        order.finalize(
            values=payload.values,
            details=payload.details,
            note=payload.note,
            explanation=payload.explanation,
        )
        events = order.pull_domain_events()
        await self._repository.save_lab_result(order)
        stored = await self._repository.save_lab_order(order)
        await self._publish_all(events)
        logger.info(f"Lab order {lab_order_id} finalized")
        return stored

    async def cancel_lab_order(self, lab_order_id: str) -> LabOrder:
        order = await self._repository.get_lab_order(lab_order_id)
        order.transition_to(LabOrderStatus.CANCELLED)
        return await self._save_lab_order(order)

    # =========================================================================
    # Payment
    # =========================================================================

    async def checkout(self, request: CheckoutRequest) -> CheckoutResult | QrCheckout:
        """Pay for an existing record or create one as part of the payment.

        Cash returns the committed ``CheckoutResult``. QR returns a
        ``QrCheckout`` whose session commits when the payment settles;
        for a draft the record is created only then.
        """
        if (request.record_id is None) == (request.draft is None):
            raise ValidationException("Checkout needs exactly one of record_id or draft", field="record_id")
        if request.draft is not None and request.line_ids is not None:
            raise ValidationException("line_ids only apply to an existing record", field="line_ids")
        if request.method == PaymentMethod.CASH and not request.checkout_id:
            raise ValidationException("A cash checkout needs a checkout_id", field="checkout_id")

        if request.method == PaymentMethod.CASH:
            return await self._checkout_cash(request)
        return await self._checkout_qr(request)

    async def reconcile_payment(self, order_code: str) -> GatewayPaymentStatus:
        """Out-of-band status check after a timeout or an undeliverable session."""
        return await self._orchestrator.reconcile(order_code)

    async def close(self) -> None:
        await self._orchestrator.close()

    async def _checkout_cash(self, request: CheckoutRequest) -> CheckoutResult:
        key = f"cash:{request.checkout_id}"
        is_duplicate, previous = await self._ledger.check_and_lock(key)
        if is_duplicate:
            if previous is not None:
                return CheckoutResult(receipt=previous, replayed=True)
            raise InvalidOperationException("checkout", "IN_PROGRESS", f"Checkout {key} is already being processed")

        try:
            created_id = await self._ledger.bound_record(key) if request.draft is not None else None
            if created_id is not None:
                logger.info(f"[CASH] Retrying {key} against record {created_id} from an earlier attempt")
                record, lines = await self._payable(created_id, None)
            elif request.draft is not None:
                lines = await self._lines_for(request.draft)
                # Reject before the record exists
                self._orchestrator.plan(request.amount, lines)
                record = await self._create_record(request.draft, lines)
                await self._ledger.bind_record(key, record.id or "")
                lines = list(record.lines)
            else:
                record, lines = await self._payable(request.record_id or "", request.line_ids)
            receipt = self._orchestrator.pay_cash(request.amount, lines, record, key)
            await self._save_record(record)
        except Exception as e:
            await self._ledger.mark_failed(key, str(e))
            raise

        await self._ledger.mark_complete(key, receipt)
        return await self._after_payment(receipt)

    async def _checkout_qr(self, request: CheckoutRequest) -> QrCheckout:
        draft_lines: list[InvoiceLine] = []
        if request.draft is not None:
            draft_lines = await self._lines_for(request.draft)
            lines = draft_lines
            record_id = None
        else:
            record, lines = await self._payable(request.record_id or "", request.line_ids)
            record_id = record.id

        async def commit(context: SettlementContext) -> CheckoutResult:
            return await self._commit_qr(context, request, draft_lines)

        session = await self._orchestrator.begin_qr_payment(
            request.amount,
            lines,
            commit,
            description=request.description,
            record_id=record_id,
        )
        return QrCheckout(session=session)

    async def _commit_qr(
        self,
        context: SettlementContext,
        request: CheckoutRequest,
        draft_lines: list[InvoiceLine],
    ) -> CheckoutResult:
        # No mark_failed here: a failed commit after money moved keeps its
        # lock so nothing retries it behind the operator's back
        key = f"qr:{context.order_code}"
        is_duplicate, previous = await self._ledger.check_and_lock(key)
        if is_duplicate:
            if previous is not None:
                return CheckoutResult(receipt=previous, replayed=True)
            raise InvalidOperationException("commit_qr_payment", "IN_PROGRESS")

        if request.draft is not None:
            record = await self._create_record(request.draft, draft_lines)
            lines = list(record.lines)
        else:
            record, lines = await self._payable(request.record_id or "", request.line_ids)
        receipt = self._orchestrator.settle(
            context.amount,
            lines,
            record,
            PaymentMethod.QR,
            key,
            order_code=context.order_code,
            invoice_id=context.invoice_id,
        )
        await self._save_record(record)
        await self._ledger.mark_complete(key, receipt)
        return await self._after_payment(receipt)

    async def _after_payment(self, receipt: Receipt) -> CheckoutResult:
        await self._publish(
            PaymentCommitted(
                record_id=receipt.record_id,
                method=receipt.method.name,
                amount=receipt.amount,
                payment_key=receipt.payment_key,
            )
        )
        invoice = await self._render_invoice(receipt.record_id, receipt.payment_key)
        return CheckoutResult(receipt=receipt, invoice=invoice)

    async def _payable(
        self, record_id: str, line_ids: tuple[str, ...] | None
    ) -> tuple[VisitRecord, list[InvoiceLine]]:
        record = await self._repository.get_record(record_id)
        if record.status == VisitStatus.CANCELLED:
            raise InvalidOperationException("checkout", record.status.name)
        if line_ids is None:
            return record, list(record.lines)
        lines = []
        for line_id in line_ids:
            line = record.find_line(line_id)
            if line is None:
                raise ValidationException(
                    f"Invoice line {line_id} does not belong to record {record_id}", field="line_ids"
                )
            lines.append(line)
        return record, lines

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _lines_for(self, draft: VisitDraft) -> list[InvoiceLine]:
        if not draft.plan_ids:
            raise ValidationException("A visit needs at least one service plan", field="plan_ids")
        lines = []
        for plan_id in draft.plan_ids:
            plan = await self._repository.get_service_plan(plan_id)
            lines.append(plan.to_invoice_line())
        return lines

    async def _create_record(self, draft: VisitDraft, lines: list[InvoiceLine]) -> VisitRecord:
        if not draft.patient_id:
            raise ValidationException("Patient is required", field="patient_id")
        record = VisitRecord.create(
            patient_id=draft.patient_id,
            lines=lines,
            patient_name=draft.patient_name,
            doctor_id=draft.doctor_id,
            symptoms=draft.symptoms,
            visit_date=draft.visit_date,
        )
        stored = await self._repository.create_record(record)
        await self._publish(VisitStatusChanged(record_id=stored.id or "", previous=None, current=stored.status.name))
        logger.info(f"Record {stored.id} created for patient {draft.patient_id}")
        return stored

    async def _enter_result_entry(self, order: LabOrder) -> LabOrder:
        """Persist IN_PROGRESS -> AWAITING_RESULT before any result is accepted."""
        if order.status == LabOrderStatus.AWAITING_RESULT:
            return order
        order.transition_to(LabOrderStatus.AWAITING_RESULT)
        return await self._save_lab_order(order)

    async def _render_invoice(self, record_id: str, payment_key: str) -> RenderedInvoice | None:
        try:
            invoice = await self._renderer.render_invoice(record_id)
        except DomainException as e:
            logger.error(f"Invoice for record {record_id} could not be rendered: {e}")
            return None
        await self._publish(InvoiceRendered(record_id=record_id, payment_key=payment_key))
        return invoice

    async def _save_record(self, record: VisitRecord) -> VisitRecord:
        events = record.pull_domain_events()
        stored = await self._repository.save_record(record)
        await self._publish_all(events)
        return stored

    async def _save_lab_order(self, order: LabOrder) -> LabOrder:
        events = order.pull_domain_events()
        stored = await self._repository.save_lab_order(order)
        await self._publish_all(events)
        return stored

    async def _publish(self, event: DomainEvent) -> None:
        await self._publisher.publish(event)

    async def _publish_all(self, events: list[DomainEvent]) -> None:
        await self._publisher.publish_all(events)
