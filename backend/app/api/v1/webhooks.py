"""
支付网关回调（Paystack Webhook）
"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from app.api.deps import get_webhook_service
from app.schemas.webhook import PaystackEvent, WebhookAck
from app.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/paystack", response_model=WebhookAck)
async def paystack_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    """
    处理 Paystack 事件。签名不符直接 400，不做任何查询；
    订单不存在、金额不符等返回 200 + processed=false，避免网关无限重试。
    """
    raw_body = await request.body()
    gateway = getattr(request.app.state, "payment_gateway", None)
    signature = request.headers.get("x-paystack-signature")
    if gateway is None or not gateway.verify_signature(raw_body, signature):
        logger.error("Paystack Webhook 签名无效")
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        event = PaystackEvent.model_validate(json.loads(raw_body))
    except (ValueError, ValidationError) as e:
        logger.error("Paystack Webhook 请求体无效: %s", e)
        raise HTTPException(status_code=400, detail="Invalid payload")

    logger.info("收到 Paystack Webhook: event=%s reference=%s", event.event, event.data.reference)
    result = await service.handle_event(event.event, event.data)
    return WebhookAck(result=result)
