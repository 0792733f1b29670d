"""
支付网关 Webhook 对账服务

按事件类型分发；订单不存在、金额不符等无法处理的事件返回 processed=False（不抛异常），
网关重复投递同一 charge.success 时只是再次覆盖为 completed，不会重复推进订单状态。
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories import OrderRepository
from app.schemas.order import OrderStatus, PaymentStatus
from app.schemas.webhook import PaymentVerifyResponse, PaystackEventData, WebhookResult
from app.services.cache_service import OrderCache
from app.services.audit_service import log_audit
from app.services.notification_service import OrderNotifier
from app.services.order_service import to_minor_units
from app.services.paystack_service import PaystackClient

logger = logging.getLogger(__name__)

# 已结清的支付状态，失败事件不再覆盖
SETTLED_PAYMENT_STATUSES = {PaymentStatus.COMPLETED.value, PaymentStatus.REFUNDED.value}


class WebhookService:
    """Paystack 事件处理"""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[OrderNotifier] = None,
        cache: Optional[OrderCache] = None,
        request_id: Optional[str] = None,
    ):
        self.db = db
        self.orders = OrderRepository(db)
        self.notifier = notifier
        self.cache = cache
        self.request_id = request_id
        self._handlers: Dict[str, Callable[[PaystackEventData], Awaitable[WebhookResult]]] = {
            "charge.success": self.handle_charge_success,
            "charge.failed": self.handle_charge_failed,
            "transfer.success": self.handle_transfer_success,
            "transfer.failed": self.handle_transfer_failed,
        }

    async def handle_event(self, event: str, data: Union[PaystackEventData, Dict[str, Any]]) -> WebhookResult:
        """按事件类型分发"""
        if not isinstance(data, PaystackEventData):
            data = PaystackEventData.model_validate(data or {})
        handler = self._handlers.get(event)
        if handler is None:
            logger.info("未处理的 Paystack 事件: %s", event)
            return WebhookResult(processed=False, message=f"Event {event} not handled")
        return await handler(data)

    async def handle_charge_success(self, data: PaystackEventData) -> WebhookResult:
        reference = data.reference
        logger.info("处理支付成功事件: reference=%s amount=%s", reference, data.amount)
        order = await self.orders.get_order_by_reference(reference) if reference else None
        if not order:
            logger.error("支付成功事件找不到订单: reference=%s", reference)
            return WebhookResult(processed=False, message=f"Order not found for reference: {reference}")

        expected_amount = to_minor_units(order["total_price"])
        if data.amount != expected_amount:
            logger.error(
                "支付金额不符: reference=%s expected=%s received=%s",
                reference, expected_amount, data.amount,
            )
            return WebhookResult(
                processed=False,
                message=f"Amount mismatch for order {reference}",
                order_id=order["id"],
                order_reference=reference,
            )

        previous_status = order["payment_status"]
        try:
            await self.orders.update_order_payment_status(
                order["id"],
                PaymentStatus.COMPLETED,
                data.gateway_response or reference,
            )
            # 支付确认后订单才离开 pending；条件更新保证只推进一次
            advanced = await self.orders.advance_status(order["id"], OrderStatus.PENDING, OrderStatus.PROCESSING)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self._invalidate_cache()

        if previous_status == PaymentStatus.COMPLETED.value:
            logger.info("重复的支付成功事件，已忽略通知: reference=%s", reference)
        else:
            logger.info("订单支付完成: reference=%s status_advanced=%s", reference, advanced)
            await log_audit(
                self.db,
                user_id=None,
                action="payment_completed",
                resource_type="order",
                resource_id=str(order["id"]),
                detail={"reference": reference, "previous_status": previous_status, "amount": data.amount},
                request_id=self.request_id,
            )
            if self.notifier is not None:
                await self.notifier.payment_confirmed(order)

        return WebhookResult(
            processed=True,
            message="Payment completed successfully",
            order_id=order["id"],
            order_reference=reference,
            previous_status=previous_status,
            new_status=PaymentStatus.COMPLETED.value,
        )

    async def handle_charge_failed(self, data: PaystackEventData) -> WebhookResult:
        reference = data.reference
        logger.info("处理支付失败事件: reference=%s", reference)
        order = await self.orders.get_order_by_reference(reference) if reference else None
        if not order:
            logger.error("支付失败事件找不到订单: reference=%s", reference)
            return WebhookResult(processed=False, message=f"Order not found for reference: {reference}")

        previous_status = order["payment_status"]
        if previous_status in SETTLED_PAYMENT_STATUSES:
            logger.warning("订单支付已结清，忽略失败事件: reference=%s payment_status=%s", reference, previous_status)
            return WebhookResult(
                processed=False,
                message=f"Payment for order {reference} already {previous_status}",
                order_id=order["id"],
                order_reference=reference,
                previous_status=previous_status,
                new_status=previous_status,
            )

        # 支付失败不等于取消订单，不归还库存
        await self.orders.update_order_payment_status(
            order["id"],
            PaymentStatus.FAILED,
            f"Failed: {data.message or 'Payment failed'}",
        )
        await self.db.commit()
        await self._invalidate_cache()
        await log_audit(
            self.db,
            user_id=None,
            action="payment_failed",
            resource_type="order",
            resource_id=str(order["id"]),
            detail={"reference": reference, "message": data.message},
            request_id=self.request_id,
        )
        logger.info("订单支付失败已记录: reference=%s message=%s", reference, data.message)
        return WebhookResult(
            processed=True,
            message="Payment failure recorded",
            order_id=order["id"],
            order_reference=reference,
            previous_status=previous_status,
            new_status=PaymentStatus.FAILED.value,
        )

    async def handle_transfer_success(self, data: PaystackEventData) -> WebhookResult:
        logger.info("Transfer success 事件: reference=%s", data.reference)
        return WebhookResult(processed=True, message="Transfer success logged")

    async def handle_transfer_failed(self, data: PaystackEventData) -> WebhookResult:
        logger.info("Transfer failed 事件: reference=%s", data.reference)
        return WebhookResult(processed=True, message="Transfer failure logged")

    async def reconcile_transaction(self, reference: str, gateway: PaystackClient) -> PaymentVerifyResponse:
        """
        主动向网关查询交易并按同一套规则对账（Webhook 丢失时的兜底）。
        网关调用失败抛 PaymentGatewayError，由调用方转为 502。
        """
        data = await gateway.verify_transaction(reference)
        gateway_status = data.get("status")
        event_data = PaystackEventData.model_validate({**data, "reference": data.get("reference") or reference})
        if gateway_status == "success":
            result = await self.handle_charge_success(event_data)
        elif gateway_status == "failed":
            result = await self.handle_charge_failed(event_data)
        else:
            result = WebhookResult(
                processed=False,
                message=f"Transaction {reference} is {gateway_status or 'unknown'}",
                order_reference=reference,
            )
        return PaymentVerifyResponse(
            gateway_status=gateway_status,
            result=result,
            extra={"paid_at": data.get("paid_at"), "channel": data.get("channel")},
        )

    async def _invalidate_cache(self) -> None:
        if self.cache is None:
            return
        try:
            await asyncio.to_thread(self.cache.invalidate_order_cache)
        except Exception as e:
            logger.debug("订单缓存失效失败: %s", e)
