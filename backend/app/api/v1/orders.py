"""
订单相关API
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import PaymentGatewayError
from app.api.deps import get_client_ip, get_order_service, get_webhook_service, require_checkout_rate_limit
from app.api.v1.auth import get_current_active_user, get_optional_user, require_admin
from app.schemas.auth import UserResponse
from app.schemas.order import (
    OrderCreate,
    OrderFilters,
    OrderListResponse,
    OrderPagination,
    OrderResponse,
    OrderSortField,
    OrderStatsResponse,
    OrderStatus,
    OrderUpdate,
    PaymentStatus,
    SortOrder,
)
from app.schemas.webhook import PaymentVerifyResponse
from app.services.audit_service import log_audit
from app.services.order_service import OrderService
from app.services.webhook_service import WebhookService

router = APIRouter()


async def _audit(db: AsyncSession, request: Request, user: Optional[UserResponse], action: str, order_id: int, detail=None):
    await log_audit(
        db,
        user_id=user.id if user else None,
        action=action,
        resource_type="order",
        resource_id=str(order_id),
        detail=detail,
        ip=get_client_ip(request),
        request_id=getattr(request.state, "request_id", None),
    )


@router.get("", response_model=OrderListResponse)
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.ORDER_LIST_DEFAULT_LIMIT, ge=1, le=settings.ORDER_LIST_MAX_LIMIT),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = Query(None),
    customer_email: Optional[str] = Query(None, description="邮箱模糊匹配（不区分大小写）"),
    user_id: Optional[int] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    sort_by: OrderSortField = Query(OrderSortField.CREATED_AT),
    sort_order: SortOrder = Query(SortOrder.DESC),
    current_user: UserResponse = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    """订单列表（管理员）。普通 admin 只能看到包含自己商品的订单。"""
    filters = OrderFilters(
        user_id=user_id,
        status=order_status,
        payment_status=payment_status,
        customer_email=customer_email,
        date_from=date_from,
        date_to=date_to,
        admin_user_id=None if current_user.is_super_admin else current_user.id,
    )
    pagination = OrderPagination(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)
    return await service.list_orders(filters, pagination)


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_checkout_rate_limit)],
)
async def create_order(
    order_data: OrderCreate,
    current_user: Optional[UserResponse] = Depends(get_optional_user),
    service: OrderService = Depends(get_order_service),
):
    """下单（游客或登录用户；登录用户以令牌中的用户为准）"""
    if current_user is not None:
        order_data = order_data.model_copy(update={"user_id": current_user.id})
    return await service.create_order(order_data)


@router.get("/my-orders", response_model=List[OrderResponse])
async def get_my_orders(
    limit: int = Query(10, ge=1, le=100),
    current_user: UserResponse = Depends(get_current_active_user),
    service: OrderService = Depends(get_order_service),
):
    """当前用户的订单"""
    return await service.get_orders_by_user(current_user.id, limit)


@router.get("/stats", response_model=OrderStatsResponse)
async def get_order_stats(
    current_user: UserResponse = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    """订单统计（带 Redis 缓存）"""
    return await service.get_order_stats()


@router.get("/status/{order_status}", response_model=List[OrderResponse])
async def get_orders_by_status(
    order_status: OrderStatus,
    limit: int = Query(50, ge=1, le=200),
    current_user: UserResponse = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    return await service.get_orders_by_status(order_status, limit)


@router.get("/payment-status/{payment_status}", response_model=List[OrderResponse])
async def get_orders_by_payment_status(
    payment_status: PaymentStatus,
    limit: int = Query(50, ge=1, le=200),
    current_user: UserResponse = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    return await service.get_orders_by_payment_status(payment_status, limit)


@router.get("/reference/{reference}", response_model=OrderResponse)
async def get_order_by_reference(
    reference: str,
    service: OrderService = Depends(get_order_service),
):
    """按订单引用号查询"""
    return await service.get_order_by_reference(reference)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    service: OrderService = Depends(get_order_service),
):
    """获取订单详情"""
    return await service.get_order_by_id(order_id)


@router.put("/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: int,
    updates: OrderUpdate,
    request: Request,
    current_user: UserResponse = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    """更新订单状态、支付状态、支付引用、地址或 metadata（管理员）"""
    order = await service.update_order(order_id, updates)
    await _audit(db, request, current_user, "update_order", order_id, updates.model_dump(mode="json", exclude_none=True))
    return order


@router.patch("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int,
    request: Request,
    current_user: Optional[UserResponse] = Depends(get_optional_user),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    """取消订单"""
    order = await service.cancel_order(order_id)
    await _audit(db, request, current_user, "cancel_order", order_id, {"payment_status": order.payment_status})
    return order


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(
    order_id: int,
    request: Request,
    current_user: UserResponse = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    """软删除订单（管理员）"""
    await service.delete_order(order_id)
    await _audit(db, request, current_user, "delete_order", order_id)


@router.post("/{order_id}/verify-payment", response_model=PaymentVerifyResponse)
async def verify_payment(
    order_id: int,
    request: Request,
    current_user: UserResponse = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
    webhook_service: WebhookService = Depends(get_webhook_service),
):
    """主动向支付网关查询交易并对账（Webhook 丢失时使用）"""
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="支付网关未配置")
    order = await service.get_order_by_id(order_id)
    try:
        return await webhook_service.reconcile_transaction(order.reference, gateway)
    except PaymentGatewayError as e:
        raise HTTPException(status_code=502, detail=str(e))
