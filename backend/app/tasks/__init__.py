"""
Celery 任务模块：订单通知（邮件、短信）
"""
from app.tasks.notification_tasks import (
    send_email_task,
    send_sms_task,
)

__all__ = [
    "send_email_task",
    "send_sms_task",
]
