"""
Paystack 支付网关客户端：初始化交易、查询交易、Webhook 签名校验
https://paystack.com/docs/api/transaction/
"""
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)


class PaystackClient:
    """Paystack HTTP 客户端（金额单位为最小货币单位，如 pesewa）"""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = settings.PAYSTACK_SECRET_KEY if secret_key is None else secret_key
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.PAYSTACK_TIMEOUT
        # 测试时注入 httpx.MockTransport
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if not self.secret_key:
            raise PaymentGatewayError("Paystack secret key 未配置")
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.secret_key}",
                "Content-Type": "application/json",
            },
        )

    @staticmethod
    def _unwrap(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_error or not body.get("status"):
            message = body.get("message") or f"HTTP {response.status_code}"
            raise PaymentGatewayError(f"Paystack API error: {message}")
        return body.get("data") or {}

    async def initialize_transaction(
        self,
        email: str,
        amount: int,
        currency: str,
        reference: str,
        callback_url: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """初始化（不扣款）交易，返回 {authorization_url, access_code, reference}"""
        payload = {
            "email": email,
            "amount": amount,
            "currency": currency,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": metadata or {},
        }
        try:
            async with self._client() as client:
                response = await client.post("/transaction/initialize", json=payload)
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Paystack 请求失败: {e}") from e
        data = self._unwrap(response)
        logger.info("Paystack 交易初始化成功: reference=%s amount=%s", reference, amount)
        return data

    async def verify_transaction(self, reference: str) -> Dict[str, Any]:
        """主动查询交易状态（对账兜底，不在主流程中使用）"""
        try:
            async with self._client() as client:
                response = await client.get(f"/transaction/verify/{reference}")
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Paystack 请求失败: {e}") from e
        return self._unwrap(response)

    def compute_signature(self, body: bytes) -> str:
        return hmac.new((self.secret_key or "").encode("utf-8"), body, hashlib.sha512).hexdigest()

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """HMAC-SHA512(原始请求体) 与 x-paystack-signature 比较（常量时间）"""
        if not signature or not self.secret_key:
            return False
        return hmac.compare_digest(self.compute_signature(body), signature)
