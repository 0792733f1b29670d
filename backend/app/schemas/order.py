"""
订单相关Schema
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class OrderStatus(str, Enum):
    """订单履约状态"""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """支付状态"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class OrderSortField(str, Enum):
    CREATED_AT = "created_at"
    TOTAL_PRICE = "total_price"
    STATUS = "status"
    PAYMENT_STATUS = "payment_status"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class OrderItemCreate(BaseModel):
    """下单商品"""
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)


class OrderCreate(BaseModel):
    """订单创建（登录用户或游客）"""
    user_id: Optional[int] = Field(None, gt=0)
    items: List[OrderItemCreate] = Field(..., min_length=1)
    delivery_option_id: Optional[int] = Field(None, gt=0)
    delivery_address: Optional[str] = Field(None, max_length=500)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(None, max_length=20)
    customer_name: Optional[str] = Field(None, max_length=160)
    # 游客希望顺便注册账号时使用
    customer_password: Optional[str] = Field(None, min_length=8, max_length=120)
    register_customer: bool = False
    metadata: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def require_guest_identity(self):
        """游客订单必须提供联系方式"""
        if not self.user_id:
            missing = [
                name for name in ("customer_email", "customer_name", "customer_phone", "delivery_address")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(f"游客订单缺少必填字段: {', '.join(missing)}")
        return self


class OrderUpdate(BaseModel):
    """订单更新（管理员）"""
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    payment_reference: Optional[str] = Field(None, max_length=100)
    delivery_address: Optional[str] = Field(None, max_length=500)
    metadata: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def require_one_field(self):
        if not self.model_dump(exclude_unset=True, exclude_none=True):
            raise ValueError("至少需要提供一个更新字段")
        return self


class OrderFilters(BaseModel):
    """订单列表筛选条件"""
    user_id: Optional[int] = None
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    customer_email: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    admin_user_id: Optional[int] = None  # 普通管理员只看包含自己商品的订单


class OrderPagination(BaseModel):
    """分页与排序"""
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    sort_by: OrderSortField = OrderSortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC


class OrderItemResponse(BaseModel):
    """订单明细响应"""
    id: int
    order_id: int
    product_id: int
    product_name: Optional[str] = None
    product_description: Optional[str] = None
    product_images: Optional[List[str]] = None
    quantity: int
    price: str
    created_at: Optional[datetime] = None


class PaystackInitData(BaseModel):
    """Paystack 初始化交易返回的数据"""
    authorization_url: Optional[str] = None
    access_code: Optional[str] = None
    reference: Optional[str] = None


class OrderResponse(BaseModel):
    """订单响应（金额以字符串返回，避免浮点误差）"""
    id: int
    user_id: Optional[int] = None
    quantity: int
    subtotal: str
    delivery_cost: Optional[str] = None
    total_price: str
    delivery_option_id: Optional[int] = None
    delivery_option_name: Optional[str] = None
    status: str
    payment_status: str
    payment_reference: Optional[str] = None
    reference: str
    delivery_address: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []
    user_username: Optional[str] = None
    user_email: Optional[str] = None
    # 仅下单接口返回
    paystack_response: Optional[PaystackInitData] = None
    paystack_authorization_url: Optional[str] = None
    paystack_access_code: Optional[str] = None
    customer_registered: Optional[bool] = None
    customer_id: Optional[int] = None


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderListResponse(BaseModel):
    """订单列表响应"""
    data: List[OrderResponse]
    pagination: PaginationInfo
    filters_applied: Dict[str, Any] = {}


class OrderStatsResponse(BaseModel):
    """订单统计"""
    total_orders: int
    pending_payments: int
    completed_payments: int
    pending_orders: int
    processing_orders: int
    delivered_orders: int
    total_revenue: str
