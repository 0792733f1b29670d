"""
Paystack 事件对账
"""
import pytest
from sqlalchemy import select

from app.core.exceptions import PaymentGatewayError
from app.models import AuditLog
from app.schemas.order import OrderCreate, OrderUpdate
from app.services.order_service import OrderService
from app.services.webhook_service import WebhookService

from tests.helpers import FakeGateway, guest_payload, load_order, product_stock


async def _place_order(session, catalog, gateway):
    """总价 215.00：2 × 100.00 + 运费 15.00"""
    return await OrderService(session, payment_gateway=gateway).create_order(OrderCreate(**guest_payload(
        [{"product_id": catalog["cake"], "quantity": 2}],
        delivery_option_id=catalog["express"],
    )))


def _charge(reference, amount=21500, **extra):
    data = {"reference": reference, "amount": amount, "status": "success", "gateway_response": "Approved"}
    data.update(extra)
    return data


class TestChargeSuccess:

    async def test_completes_payment_and_advances_status(self, session, catalog, gateway, notifier, database):
        order = await _place_order(session, catalog, gateway)
        result = await WebhookService(session, notifier=notifier).handle_event("charge.success", _charge(order.reference))

        assert result.processed is True
        assert result.order_id == order.id
        assert result.previous_status == "processing"
        assert result.new_status == "completed"
        stored = await load_order(database, order.id)
        assert stored.payment_status == "completed"
        assert stored.payment_reference == "Approved"
        assert stored.status == "processing"
        assert len(notifier.sms) == 1
        assert notifier.emails[0]["subject"] == f"Payment Confirmed - {order.reference}"

    async def test_uses_reference_when_gateway_response_missing(self, session, catalog, gateway, database):
        order = await _place_order(session, catalog, gateway)
        await WebhookService(session).handle_event("charge.success", _charge(order.reference, gateway_response=None))
        assert (await load_order(database, order.id)).payment_reference == order.reference

    async def test_duplicate_delivery_is_idempotent(self, session, catalog, gateway, notifier, database):
        order = await _place_order(session, catalog, gateway)
        service = WebhookService(session, notifier=notifier)
        first = await service.handle_event("charge.success", _charge(order.reference))
        second = await service.handle_event("charge.success", _charge(order.reference))

        assert first.processed and second.processed
        assert second.previous_status == "completed"
        stored = await load_order(database, order.id)
        assert stored.payment_status == "completed"
        assert stored.status == "processing"
        assert len(notifier.emails) == 1
        assert len(notifier.sms) == 1

    async def test_does_not_rewind_later_status(self, session, catalog, gateway, database):
        order = await _place_order(session, catalog, gateway)
        service = WebhookService(session)
        await service.handle_event("charge.success", _charge(order.reference))
        await OrderService(session).update_order(order.id, OrderUpdate(status="shipped"))
        await service.handle_event("charge.success", _charge(order.reference))
        assert (await load_order(database, order.id)).status == "shipped"

    async def test_amount_mismatch_leaves_payment_untouched(self, session, catalog, gateway, notifier, database):
        order = await _place_order(session, catalog, gateway)
        result = await WebhookService(session, notifier=notifier).handle_event(
            "charge.success", _charge(order.reference, amount=21499)
        )
        assert result.processed is False
        assert "Amount mismatch" in result.message
        stored = await load_order(database, order.id)
        assert stored.payment_status == "processing"
        assert stored.status == "pending"
        assert notifier.emails == []

    async def test_unknown_reference_is_ignored(self, session, catalog):
        result = await WebhookService(session).handle_event("charge.success", _charge("ORD-0-000"))
        assert result.processed is False
        assert result.message == "Order not found for reference: ORD-0-000"

    async def test_writes_audit_entry(self, session, catalog, gateway):
        order = await _place_order(session, catalog, gateway)
        await WebhookService(session, request_id="req-1").handle_event("charge.success", _charge(order.reference))
        entry = (await session.execute(select(AuditLog).where(AuditLog.action == "payment_completed"))).scalar_one()
        assert entry.user_id is None
        assert entry.resource_id == str(order.id)
        assert entry.request_id == "req-1"


class TestChargeFailed:

    async def test_marks_payment_failed_without_restoring_stock(self, session, catalog, gateway, database):
        order = await _place_order(session, catalog, gateway)
        result = await WebhookService(session).handle_event(
            "charge.failed", {"reference": order.reference, "amount": 21500, "message": "Declined"}
        )
        assert result.processed is True
        assert result.new_status == "failed"
        stored = await load_order(database, order.id)
        assert stored.payment_status == "failed"
        assert stored.payment_reference == "Failed: Declined"
        assert stored.status == "pending"
        assert await product_stock(database, catalog["cake"]) == 8

    async def test_default_failure_message(self, session, catalog, gateway, database):
        order = await _place_order(session, catalog, gateway)
        await WebhookService(session).handle_event("charge.failed", {"reference": order.reference})
        assert (await load_order(database, order.id)).payment_reference == "Failed: Payment failed"

    async def test_failure_after_completion_is_ignored(self, session, catalog, gateway, database):
        order = await _place_order(session, catalog, gateway)
        service = WebhookService(session)
        await service.handle_event("charge.success", _charge(order.reference))
        result = await service.handle_event("charge.failed", {"reference": order.reference, "message": "late"})
        assert result.processed is False
        assert (await load_order(database, order.id)).payment_status == "completed"

    async def test_unknown_reference_is_ignored(self, session, catalog):
        result = await WebhookService(session).handle_event("charge.failed", {"reference": "nope"})
        assert result.processed is False


class TestOtherEvents:

    @pytest.mark.parametrize("event", ["transfer.success", "transfer.failed"])
    async def test_transfer_events_are_logged_only(self, session, catalog, event):
        result = await WebhookService(session).handle_event(event, {"reference": "TRF-1"})
        assert result.processed is True
        assert result.order_id is None

    async def test_unhandled_event(self, session, catalog):
        result = await WebhookService(session).handle_event("subscription.create", {})
        assert result.processed is False
        assert result.message == "Event subscription.create not handled"


class TestReconcile:

    async def test_verified_success_completes_order(self, session, catalog, gateway, database):
        order = await _place_order(session, catalog, gateway)
        gateway.verify_data = {"status": "success", "reference": order.reference, "amount": 21500,
                               "gateway_response": "Successful", "channel": "card"}
        response = await WebhookService(session).reconcile_transaction(order.reference, gateway)
        assert gateway.verified == [order.reference]
        assert response.gateway_status == "success"
        assert response.result.processed is True
        assert response.extra["channel"] == "card"
        assert (await load_order(database, order.id)).payment_status == "completed"

    async def test_abandoned_transaction_changes_nothing(self, session, catalog, gateway, database):
        order = await _place_order(session, catalog, gateway)
        gateway.verify_data = {"status": "abandoned", "reference": order.reference, "amount": 21500}
        response = await WebhookService(session).reconcile_transaction(order.reference, gateway)
        assert response.result.processed is False
        assert (await load_order(database, order.id)).payment_status == "processing"

    async def test_gateway_error_propagates(self, session, catalog):
        with pytest.raises(PaymentGatewayError):
            await WebhookService(session).reconcile_transaction("ORD-1-001", FakeGateway(fail=True))
