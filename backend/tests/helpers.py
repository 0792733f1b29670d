"""
测试替身与辅助函数
"""
from typing import Any, Dict, List

from sqlalchemy import func, select

from app.core.database import Database
from app.core.exceptions import PaymentGatewayError
from app.models import Customer, Order, Product
from app.services.auth_service import create_access_token
from app.services.notification_service import OrderNotifier
from app.services.paystack_service import PaystackClient

TEST_SECRET = "sk_test_secret"


class FakeGateway(PaystackClient):
    """记录调用的 Paystack 替身，签名校验沿用真实实现"""

    def __init__(self, fail: bool = False):
        super().__init__(secret_key=TEST_SECRET)
        self.fail = fail
        self.initialized: List[Dict[str, Any]] = []
        self.verified: List[str] = []
        self.verify_data: Dict[str, Any] = {}

    async def initialize_transaction(self, email, amount, currency, reference, callback_url, metadata=None):
        self.initialized.append({
            "email": email,
            "amount": amount,
            "currency": currency,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": metadata,
        })
        if self.fail:
            raise PaymentGatewayError("Paystack API error: gateway down")
        return {
            "authorization_url": f"https://checkout.paystack.com/{reference}",
            "access_code": f"code-{reference}",
            "reference": reference,
        }

    async def verify_transaction(self, reference):
        self.verified.append(reference)
        if self.fail:
            raise PaymentGatewayError("Paystack API error: gateway down")
        return self.verify_data


class FakeNotifier(OrderNotifier):
    """只记录，不发送"""

    def __init__(self, fail: bool = False):
        super().__init__(use_celery=False)
        self.fail = fail
        self.emails: List[Dict[str, Any]] = []
        self.sms: List[Dict[str, Any]] = []

    async def send_email(self, to, subject, text, html=None):
        self.emails.append({"to": to, "subject": subject, "text": text})
        return not self.fail

    async def send_sms(self, to, message):
        self.sms.append({"to": to, "message": message})
        return not self.fail


class FakeRedis:
    """内存版 Redis，只实现缓存与限流用到的命令"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.store: Dict[str, Any] = {}
        self.ttls: Dict[str, int] = {}

    def _check(self):
        if self.fail:
            raise ConnectionError("redis unavailable")

    def get(self, key):
        self._check()
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self._check()
        self.store.pop(key, None)

    def incr(self, key):
        self._check()
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    def expire(self, key, ttl):
        self.ttls[key] = ttl

    def ping(self):
        self._check()
        return True


def auth_headers(username: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': username})}"}


def guest_payload(items, **extra) -> Dict[str, Any]:
    payload = {
        "items": items,
        "customer_email": "a@b.com",
        "customer_name": "Ama Mensah",
        "customer_phone": "0241234567",
        "delivery_address": "12 Ring Road, Accra",
    }
    payload.update(extra)
    return payload


async def count_rows(database: Database, model) -> int:
    async with database.session_factory() as s:
        return await s.scalar(select(func.count()).select_from(model))


async def product_stock(database: Database, product_id: int) -> int:
    async with database.session_factory() as s:
        return await s.scalar(select(Product.stock).where(Product.id == product_id))


async def load_order(database: Database, order_id: int) -> Order:
    async with database.session_factory() as s:
        return await s.get(Order, order_id)


async def load_customer(database: Database, email: str):
    async with database.session_factory() as s:
        return (await s.execute(select(Customer).where(Customer.email == email))).scalar_one_or_none()
