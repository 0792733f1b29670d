"""
支付网关 Webhook 相关Schema
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel


class PaystackCustomer(BaseModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    customer_code: Optional[str] = None

    class Config:
        extra = "allow"


class PaystackEventData(BaseModel):
    """Paystack 事件 data 字段（金额单位为最小货币单位，如 pesewa）"""
    id: Optional[int] = None
    status: Optional[str] = None
    reference: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    message: Optional[str] = None
    gateway_response: Optional[str] = None
    paid_at: Optional[str] = None
    channel: Optional[str] = None
    metadata: Optional[Any] = None
    customer: Optional[PaystackCustomer] = None

    class Config:
        extra = "allow"


class PaystackEvent(BaseModel):
    """Paystack Webhook 请求体"""
    event: str
    data: PaystackEventData

    class Config:
        extra = "allow"


class WebhookResult(BaseModel):
    """事件处理结果"""
    processed: bool
    message: str
    order_id: Optional[int] = None
    order_reference: Optional[str] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None


class WebhookAck(BaseModel):
    """返回给网关的确认"""
    status: str = "success"
    message: str = "Webhook processed successfully"
    result: WebhookResult


class PaymentVerifyResponse(BaseModel):
    """主动向网关查询交易后的对账结果"""
    gateway_status: Optional[str] = None
    result: WebhookResult
    extra: Dict[str, Any] = {}
