"""Tests for QrSession: the race between settlement, cancel, timeout and channel loss."""

import asyncio
import logging
from decimal import Decimal

import pytest

from clinicflow.core.domain.exceptions import IntegrationException, InvalidOperationException
from clinicflow.domains.visits.application.dto import CheckoutResult, Receipt
from clinicflow.domains.visits.application.ports import PaymentLinkContext
from clinicflow.domains.visits.application.services import QrSession, SettlementContext
from clinicflow.domains.visits.domain.exceptions import PostPaymentCommitFailed, Undeliverable
from clinicflow.domains.visits.domain.value_objects import GatewayPaymentStatus, PaymentMethod, QrSessionState


class RecordingCommit:
    """Commit callback that counts its calls."""

    def __init__(self, error: Exception | None = None):
        self.contexts: list[SettlementContext] = []
        self.error = error

    async def __call__(self, context: SettlementContext) -> CheckoutResult:
        self.contexts.append(context)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        receipt = Receipt(
            record_id="MR-1",
            method=PaymentMethod.QR,
            amount=context.amount,
            total=context.amount,
            paid=context.amount,
            outstanding=Decimal("0"),
            payment_key=f"qr:{context.order_code}",
            order_code=context.order_code,
            invoice_id=context.invoice_id,
        )
        return CheckoutResult(receipt=receipt)


@pytest.fixture
def commit() -> RecordingCommit:
    return RecordingCommit()


def _session(gateway, broker, commit, timeout: float | None = 30.0) -> QrSession:
    return QrSession(
        amount=Decimal("500000"),
        gateway=gateway,
        broker=broker,
        commit=commit,
        context=PaymentLinkContext(description="Khám tổng quát"),
        settlement_timeout=timeout,
    )


class TestOpen:
    @pytest.mark.asyncio
    async def test_open_binds_invoice_before_returning(self, gateway, broker, transport, commit):
        session = await _session(gateway, broker, commit).open()

        assert session.state == QrSessionState.AWAITING_SETTLEMENT
        assert session.order_code == "1001"
        assert session.invoice_id == "INV-1001"
        assert session.qr_payload
        assert "INV-1001" in transport.listeners

        await session.cancel()

    @pytest.mark.asyncio
    async def test_gateway_failure_releases_subscription(self, broker, transport, commit):
        from tests.utils.fakes import FakePaymentGateway

        session = _session(FakePaymentGateway(fail_create=True), broker, commit)

        with pytest.raises(IntegrationException):
            await session.open()

        assert session.state == QrSessionState.CANCELLED
        assert broker.active_invoice_ids() == []
        assert transport.listeners == {}

    @pytest.mark.asyncio
    async def test_cannot_open_twice(self, gateway, broker, commit):
        session = await _session(gateway, broker, commit).open()

        with pytest.raises(InvalidOperationException):
            await session.open()

        await session.cancel()


class TestSettlement:
    @pytest.mark.asyncio
    async def test_settlement_logs_carry_payment_identifiers(self, gateway, broker, transport, commit, caplog):
        session = await _session(gateway, broker, commit).open()

        with caplog.at_level(logging.INFO, logger="clinicflow.domains.visits.application.services.qr_session"):
            transport.publish(session.invoice_id)
            await session.await_settlement()

        committed = [r for r in caplog.records if "Payment committed" in r.getMessage()]
        assert len(committed) == 1
        assert committed[0].payment == {
            "component": "qr_session",
            "record_id": "MR-1",
            "payment_key": "qr:1001",
            "order_code": "1001",
            "invoice_id": "INV-1001",
        }
        resolved = [r for r in caplog.records if "Session resolved" in r.getMessage()]
        assert resolved[0].payment["session_state"] == "SETTLED"

    @pytest.mark.asyncio
    async def test_event_settles_and_commits_once(self, gateway, broker, transport, commit):
        session = await _session(gateway, broker, commit).open()

        transport.publish(session.invoice_id)
        transport.publish(session.invoice_id)
        first, second = await asyncio.gather(session.await_settlement(), session.await_settlement())

        assert first.settled and second.settled
        assert first.result is second.result
        assert len(commit.contexts) == 1
        context = commit.contexts[0]
        assert (context.order_code, context.invoice_id, context.amount) == ("1001", "INV-1001", Decimal("500000"))
        assert context.event is not None
        assert broker.active_invoice_ids() == []

    @pytest.mark.asyncio
    async def test_commit_failure_is_not_recoverable(self, gateway, broker, transport):
        commit = RecordingCommit(error=IntegrationException("clinic-backend", "create failed"))
        session = await _session(gateway, broker, commit).open()

        transport.publish(session.invoice_id)

        with pytest.raises(PostPaymentCommitFailed) as exc_info:
            await session.await_settlement()
        assert exc_info.value.order_code == "1001"
        assert exc_info.value.recoverable is False
        assert session.state == QrSessionState.SETTLED

        with pytest.raises(PostPaymentCommitFailed):
            await session.await_settlement()
        assert len(commit.contexts) == 1


class TestCancelRace:
    """Money that moved always wins over an operator cancel."""

    @pytest.mark.asyncio
    async def test_cancel_before_payment(self, gateway, broker, transport, commit):
        session = await _session(gateway, broker, commit).open()
        invoice_id = session.invoice_id

        assert await session.cancel() is True
        await asyncio.sleep(0)

        assert session.state == QrSessionState.CANCELLED
        assert transport.publish(invoice_id) is False
        outcome = await session.await_settlement()
        assert not outcome.settled
        assert commit.contexts == []

    @pytest.mark.asyncio
    async def test_event_then_cancel(self, gateway, broker, transport, commit):
        session = await _session(gateway, broker, commit).open()

        transport.publish(session.invoice_id)

        assert await session.cancel() is False
        assert (await session.await_settlement()).settled
        assert len(commit.contexts) == 1

    @pytest.mark.asyncio
    async def test_cancel_when_gateway_already_paid(self, gateway, broker, transport, commit):
        session = await _session(gateway, broker, commit).open()
        gateway.mark_paid(session.order_code)

        assert await session.cancel() is False
        transport.publish(session.invoice_id)

        outcome = await session.await_settlement()
        assert outcome.settled
        assert len(commit.contexts) == 1
        assert commit.contexts[0].event is None

    @pytest.mark.asyncio
    async def test_event_arrives_during_status_check(self, gateway, broker, transport, commit):
        session = await _session(gateway, broker, commit).open()

        async def status_while_event_arrives(order_code):
            transport.publish(session.invoice_id)
            return GatewayPaymentStatus.PENDING

        gateway.get_payment_status = status_while_event_arrives

        assert await session.cancel() is False
        assert session.state == QrSessionState.SETTLED
        assert (await session.await_settlement()).settled
        assert len(commit.contexts) == 1

    @pytest.mark.asyncio
    async def test_status_check_failure_still_cancels(self, gateway, broker, commit):
        session = await _session(gateway, broker, commit).open()

        async def unreachable(order_code):
            raise IntegrationException("payment-gateway", "timeout")

        gateway.get_payment_status = unreachable

        assert await session.cancel() is True

    @pytest.mark.asyncio
    async def test_cancel_before_open_rejected(self, gateway, broker, commit):
        with pytest.raises(InvalidOperationException):
            await _session(gateway, broker, commit).cancel()


class TestTimeoutAndChannelLoss:
    @pytest.mark.asyncio
    async def test_timeout(self, gateway, broker, transport, commit):
        session = await _session(gateway, broker, commit, timeout=0.01).open()
        invoice_id = session.invoice_id

        outcome = await asyncio.wait_for(session.await_settlement(), 1)

        assert outcome.state == QrSessionState.TIMED_OUT
        assert outcome.order_code == "1001"
        await asyncio.sleep(0)
        assert transport.publish(invoice_id) is False
        assert commit.contexts == []

    @pytest.mark.asyncio
    async def test_channel_lost_is_undeliverable(self, gateway, broker, transport, commit):
        session = await _session(gateway, broker, commit).open()

        transport.drop(ConnectionError("socket closed"))

        with pytest.raises(Undeliverable) as exc_info:
            await session.await_settlement()
        assert exc_info.value.invoice_id == "INV-1001"
        assert exc_info.value.recoverable is False
        assert session.state == QrSessionState.TIMED_OUT
        assert commit.contexts == []

    @pytest.mark.asyncio
    async def test_settlement_before_drop_still_commits(self, gateway, broker, transport, commit):
        session = await _session(gateway, broker, commit).open()

        transport.publish(session.invoice_id)
        transport.drop()

        assert (await session.await_settlement()).settled
