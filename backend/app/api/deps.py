"""
通用依赖：限流、服务装配
"""
import asyncio

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.services.order_service import OrderService
from app.services.rate_limit_service import check_and_incr_checkout
from app.services.webhook_service import WebhookService


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def require_checkout_rate_limit(request: Request) -> None:
    """下单限流：超出每分钟下单次数返回 429。"""
    client = getattr(request.app.state, "redis", None)
    allowed, n, limit = await asyncio.to_thread(check_and_incr_checkout, client, get_client_ip(request))
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"下单过于频繁，请稍后再试（每分钟上限 {limit}）",
        )


def get_order_service(request: Request, db: AsyncSession = Depends(get_db)) -> OrderService:
    """支付网关、通知器、缓存在应用启动时创建，挂在 app.state 上"""
    return OrderService(
        db,
        payment_gateway=getattr(request.app.state, "payment_gateway", None),
        notifier=getattr(request.app.state, "notifier", None),
        cache=getattr(request.app.state, "cache", None),
    )


def get_webhook_service(request: Request, db: AsyncSession = Depends(get_db)) -> WebhookService:
    return WebhookService(
        db,
        notifier=getattr(request.app.state, "notifier", None),
        cache=getattr(request.app.state, "cache", None),
        request_id=getattr(request.state, "request_id", None),
    )
