"""
通知异步任务：邮件、短信在 Celery Worker 中发送，接口不等待第三方响应。
发送失败按 Celery 重试策略重试，最终失败只记录日志，不影响订单。
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from app.celery_app import celery_app
from app.core.exceptions import NotificationError
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def _run_async(coro):
    """在同步上下文中运行异步协程（Celery 任务内使用）"""
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(
    bind=True,
    name="notifications.send_email",
    autoretry_for=(NotificationError,),
    retry_backoff=True,
    max_retries=3,
)
def send_email_task(
    self,
    from_email: str,
    to: str,
    subject: str,
    text: str,
    html: Optional[str] = None,
) -> Dict[str, Any]:
    """异步：发送邮件"""
    logger.info("send_email_task to=%s subject=%s", to, subject)
    return _run_async(NotificationService().send_email(from_email, to, subject, text, html))


@celery_app.task(
    bind=True,
    name="notifications.send_sms",
    autoretry_for=(NotificationError,),
    retry_backoff=True,
    max_retries=3,
)
def send_sms_task(self, to: str, message: str, sender_id: Optional[str] = None) -> Dict[str, Any]:
    """异步：发送短信"""
    logger.info("send_sms_task to=%s", to)
    return _run_async(NotificationService().send_sms(to, message, sender_id))
