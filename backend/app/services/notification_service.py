"""
通知服务：邮件（MailerSend）与短信（Arkesel）

NotificationService 只负责调用第三方接口，失败抛 NotificationError；
OrderNotifier 面向订单流程，所有发送都是尽力而为：失败只记日志，不影响调用方结果。
"""
import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import NotificationError

logger = logging.getLogger(__name__)


def normalize_phone(phone: str) -> str:
    """本地号码 0XXXXXXXXX 转为 233XXXXXXXXX，去掉开头的 +"""
    phone = phone.strip().replace(" ", "")
    if phone.startswith("0"):
        phone = "233" + phone[1:]
    if phone.startswith("+"):
        phone = phone[1:]
    return phone


class NotificationService:
    """邮件/短信发送"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 15.0):
        self._transport = transport
        self.timeout = timeout

    async def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise NotificationError(str(e)) from e
        if response.is_error:
            try:
                message = response.json().get("message")
            except ValueError:
                message = None
            raise NotificationError(message or f"HTTP {response.status_code}")
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    async def send_email(self, from_email: str, to: str, subject: str, text: str, html: Optional[str] = None) -> Dict[str, Any]:
        if not settings.MAILERSEND_API_KEY:
            raise NotificationError("MailerSend API key 未配置")
        payload: Dict[str, Any] = {
            "from": {"email": from_email},
            "to": [{"email": to}],
            "subject": subject,
            "text": text,
        }
        if html:
            payload["html"] = html
        return await self._post(
            f"{settings.MAILERSEND_API_URL.rstrip('/')}/email",
            payload,
            {"Authorization": f"Bearer {settings.MAILERSEND_API_KEY}"},
        )

    async def send_sms(self, to: str, message: str, sender_id: Optional[str] = None) -> Dict[str, Any]:
        if not settings.ARKESEL_SMS_API_KEY:
            raise NotificationError("Arkesel SMS API key 未配置")
        payload = {
            "sender": sender_id or settings.ARKESEL_SMS_SENDER_ID,
            "message": message,
            "recipients": [normalize_phone(to)],
        }
        return await self._post(settings.ARKESEL_SMS_URL, payload, {"api-key": settings.ARKESEL_SMS_API_KEY})


class OrderNotifier:
    """订单相关通知（尽力而为）"""

    def __init__(self, service: Optional[NotificationService] = None, use_celery: Optional[bool] = None):
        self.service = service or NotificationService()
        self.use_celery = settings.NOTIFICATIONS_USE_CELERY if use_celery is None else use_celery

    async def send_email(self, to: str, subject: str, text: str, html: Optional[str] = None) -> bool:
        from_email = settings.MAILERSEND_FROM_EMAIL
        try:
            if self.use_celery:
                from app.tasks.notification_tasks import send_email_task
                send_email_task.delay(from_email, to, subject, text, html)
            else:
                await self.service.send_email(from_email, to, subject, text, html)
            return True
        except Exception as e:
            logger.warning("邮件发送失败 to=%s subject=%s: %s", to, subject, e)
            return False

    async def send_sms(self, to: str, message: str) -> bool:
        sender_id = settings.ARKESEL_SMS_SENDER_ID
        try:
            if self.use_celery:
                from app.tasks.notification_tasks import send_sms_task
                send_sms_task.delay(to, message, sender_id)
            else:
                await self.service.send_sms(to, message, sender_id)
            return True
        except Exception as e:
            logger.warning("短信发送失败 to=%s: %s", to, e)
            return False

    async def payment_confirmed(self, order: Dict[str, Any]) -> None:
        """支付成功：短信 + 邮件"""
        reference = order["reference"]
        name = order.get("customer_name") or "Customer"
        total = order.get("total_price")
        if order.get("customer_phone"):
            await self.send_sms(
                order["customer_phone"],
                f"Payment received for order {reference}. Amount: {settings.PAYSTACK_CURRENCY} {total}. Thank you!",
            )
        if order.get("customer_email"):
            text = (
                f"Dear {name},\n\n"
                f"We have received your payment of {settings.PAYSTACK_CURRENCY} {total} "
                f"for order {reference}. We are now processing your order.\n"
            )
            html = (
                f"<p>Dear <strong>{name}</strong>,</p>"
                f"<p>We have received your payment of {settings.PAYSTACK_CURRENCY} {total} "
                f"for order <strong>{reference}</strong>.</p>"
                f"<p>We are now processing your order.</p>"
            )
            await self.send_email(order["customer_email"], f"Payment Confirmed - {reference}", text, html)
        else:
            logger.info("订单 %s 无客户邮箱，跳过支付确认邮件", reference)

    async def status_changed(self, order: Dict[str, Any], new_status: str) -> None:
        """订单状态变更：短信 + 邮件"""
        reference = order["reference"]
        if order.get("customer_phone"):
            await self.send_sms(
                order["customer_phone"],
                f"Your order ({reference}) status has been updated to: {new_status}.",
            )
        if order.get("customer_email"):
            name = order.get("customer_name") or "Customer"
            display = new_status.capitalize()
            text = f"Dear {name},\n\nYour order ({reference}) status has been updated to: {display}.\n"
            html = (
                f"<p>Dear <strong>{name}</strong>,</p>"
                f"<p>Your order <strong>{reference}</strong> status has been updated "
                f"from {order.get('status')} to <strong>{display}</strong>.</p>"
            )
            await self.send_email(order["customer_email"], f"Order Status Update - {reference}", text, html)
