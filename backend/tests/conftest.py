"""
测试公共夹具：每个测试一个独立的 SQLite 文件库，外部网关与通知使用替身
"""
import os

# 必须在导入 app 之前设置，Settings 在导入时读取环境变量
os.environ.update({
    "DATABASE_URL": "sqlite+aiosqlite:///./unused.db",
    "CACHE_ENABLED": "false",
    "RATE_LIMIT_ENABLED": "false",
    "NOTIFICATIONS_USE_CELERY": "false",
    "AUDIT_LOG_ENABLED": "true",
    "PAYSTACK_SECRET_KEY": "sk_test_secret",
    "PAYSTACK_CURRENCY": "GHS",
    "FRONTEND_URL": "http://shop.test",
    "MAILERSEND_API_KEY": "ms_test_key",
    "ARKESEL_SMS_API_KEY": "ark_test_key",
    "JWT_SECRET_KEY": "test-secret",
})

from decimal import Decimal
from typing import Dict

import httpx
import pytest

from app.core.database import Database
from app.models import DeliveryOption, Product, User
from tests.helpers import FakeGateway, FakeNotifier


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def session(database):
    async with database.session_factory() as s:
        yield s


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
async def catalog(database) -> Dict[str, int]:
    """两个管理员、三件商品、一个配送方式"""
    async with database.session_factory() as s:
        admin = User(username="admin", email="admin@shop.test", role="admin")
        other_admin = User(username="other", email="other@shop.test", role="admin")
        root = User(username="root", email="root@shop.test", role="superAdmin")
        buyer = User(username="buyer", email="buyer@shop.test", role="user")
        s.add_all([admin, other_admin, root, buyer])
        await s.flush()
        cake = Product(name="Cake", price=Decimal("100.00"), stock=10, created_by=admin.id)
        card = Product(name="Card", price=Decimal("12.50"), stock=5, created_by=other_admin.id)
        last = Product(name="Last One", price=Decimal("40.00"), stock=1, created_by=admin.id)
        express = DeliveryOption(name="Express", amount=Decimal("15.00"))
        s.add_all([cake, card, last, express])
        await s.commit()
        return {
            "admin": admin.id,
            "other_admin": other_admin.id,
            "root": root.id,
            "buyer": buyer.id,
            "cake": cake.id,
            "card": card.id,
            "last": last.id,
            "express": express.id,
        }


@pytest.fixture
async def client(database, gateway, notifier):
    from app.main import app

    app.state.database = database
    app.state.payment_gateway = gateway
    app.state.notifier = notifier
    app.state.redis = None
    app.state.cache = None
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
