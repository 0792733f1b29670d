"""
仓储层：原子库存、引用号、软删除、筛选分页、统计
"""
import re
from datetime import datetime
from decimal import Decimal

from app.models import Order, OrderItem
from app.repositories import OrderRepository, ProductRepository, StockDirection
from app.schemas.order import OrderFilters, OrderPagination, OrderSortField, SortOrder

from tests.helpers import product_stock


async def _make_order(session, reference, total="10.00", status="pending", payment_status="pending",
                      email=None, product_id=None, user_id=None):
    repo = OrderRepository(session)
    order = await repo.create_order({
        "user_id": user_id,
        "quantity": 1,
        "subtotal": Decimal(total),
        "total_price": Decimal(total),
        "status": status,
        "payment_status": payment_status,
        "reference": reference,
        "customer_email": email,
    })
    if product_id is not None:
        await repo.create_order_items([
            {"order_id": order.id, "product_id": product_id, "quantity": 1, "price": Decimal(total)}
        ])
    await session.commit()
    return order


class TestProductRepository:

    async def test_decrease_is_conditional(self, session, catalog, database):
        repo = ProductRepository(session)
        assert await repo.decrease_stock(catalog["last"], 1) is True
        assert await repo.decrease_stock(catalog["last"], 1) is False
        await session.commit()
        assert await product_stock(database, catalog["last"]) == 0

    async def test_decrease_more_than_stock_leaves_stock_untouched(self, session, catalog, database):
        repo = ProductRepository(session)
        assert await repo.decrease_stock(catalog["card"], 6) is False
        await session.commit()
        assert await product_stock(database, catalog["card"]) == 5

    async def test_adjust_stock_increase(self, session, catalog, database):
        repo = ProductRepository(session)
        assert await repo.adjust_stock(catalog["card"], 3, StockDirection.INCREASE) is True
        assert await repo.adjust_stock(catalog["card"], 2, "decrease") is True
        await session.commit()
        assert await product_stock(database, catalog["card"]) == 6

    async def test_check_availability(self, session, catalog):
        repo = ProductRepository(session)
        assert await repo.check_availability(catalog["card"], 5) == {"available": True, "available_stock": 5}
        result = await repo.check_availability(catalog["card"], 6)
        assert result["available"] is False
        assert result["available_stock"] == 5
        missing = await repo.check_availability(9999, 1)
        assert missing == {"available": False, "reason": "Product not found"}


class TestOrderRepository:

    def test_reference_format(self):
        reference = OrderRepository.generate_order_reference()
        assert re.fullmatch(r"ORD-\d{13}-\d{3}", reference)

    async def test_get_by_reference_and_items(self, session, catalog):
        order = await _make_order(session, "ORD-1-001", product_id=catalog["cake"])
        repo = OrderRepository(session)
        found = await repo.get_order_by_reference("ORD-1-001")
        assert found["id"] == order.id
        items = await repo.get_order_items(order.id)
        assert items[0]["product_name"] == "Cake"
        assert items[0]["price"] == Decimal("10.00")

    async def test_soft_delete_frees_reference(self, session, catalog):
        order = await _make_order(session, "ORD-1-002")
        repo = OrderRepository(session)
        assert await repo.delete_order(order.id) is True
        await session.commit()

        assert await repo.get_order_by_id(order.id) is None
        assert await repo.get_order_by_reference("ORD-1-002") is None
        row = await session.get(Order, order.id, populate_existing=True)
        assert row.is_deleted is True
        assert row.deleted_at is not None
        assert row.reference.startswith("ORD-1-002_deleted_")

        # 原引用号可被新订单使用
        again = await _make_order(session, "ORD-1-002")
        assert again.id != order.id
        assert await repo.delete_order(order.id) is False

    async def test_update_payment_status(self, session, catalog):
        order = await _make_order(session, "ORD-1-003")
        repo = OrderRepository(session)
        assert await repo.update_order_payment_status(order.id, "failed", "Failed: declined") is True
        await session.commit()
        found = await repo.get_order_by_id(order.id)
        assert found["payment_status"] == "failed"
        assert found["payment_reference"] == "Failed: declined"

    async def test_advance_status_only_once(self, session, catalog):
        order = await _make_order(session, "ORD-1-004")
        repo = OrderRepository(session)
        assert await repo.advance_status(order.id, "pending", "processing") is True
        assert await repo.advance_status(order.id, "pending", "processing") is False
        await session.commit()
        assert (await repo.get_order_by_id(order.id))["status"] == "processing"

    async def test_list_filters_and_pagination(self, session, catalog):
        await _make_order(session, "ORD-2-001", total="30.00", email="Ama@Example.com", product_id=catalog["cake"])
        await _make_order(session, "ORD-2-002", total="10.00", email="kofi@example.com", product_id=catalog["card"],
                          payment_status="completed")
        await _make_order(session, "ORD-2-003", total="20.00", email="esi@other.org", product_id=catalog["last"],
                          status="processing")
        repo = OrderRepository(session)

        orders, total = await repo.list_orders(OrderFilters(customer_email="example.COM"))
        assert total == 2
        assert {o["reference"] for o in orders} == {"ORD-2-001", "ORD-2-002"}

        orders, total = await repo.list_orders(OrderFilters(payment_status="completed"))
        assert [o["reference"] for o in orders] == ["ORD-2-002"]

        orders, total = await repo.list_orders(OrderFilters(status="processing"))
        assert [o["reference"] for o in orders] == ["ORD-2-003"]

        orders, total = await repo.list_orders(
            OrderFilters(),
            OrderPagination(page=1, limit=2, sort_by=OrderSortField.TOTAL_PRICE, sort_order=SortOrder.ASC),
        )
        assert total == 3
        assert [o["reference"] for o in orders] == ["ORD-2-002", "ORD-2-003"]

        orders, _ = await repo.list_orders(
            OrderFilters(),
            OrderPagination(page=2, limit=2, sort_by=OrderSortField.TOTAL_PRICE, sort_order=SortOrder.ASC),
        )
        assert [o["reference"] for o in orders] == ["ORD-2-001"]

        _, total = await repo.list_orders(OrderFilters(date_to=datetime(2000, 1, 1)))
        assert total == 0

    async def test_list_restricted_to_admin_products(self, session, catalog):
        await _make_order(session, "ORD-3-001", product_id=catalog["cake"])
        await _make_order(session, "ORD-3-002", product_id=catalog["card"])
        await _make_order(session, "ORD-3-003")
        repo = OrderRepository(session)

        orders, total = await repo.list_orders(OrderFilters(admin_user_id=catalog["admin"]))
        assert total == 1
        assert orders[0]["reference"] == "ORD-3-001"

        # 明细被软删除后不再计入
        await session.execute(
            OrderItem.__table__.update().where(OrderItem.product_id == catalog["cake"]).values(is_deleted=True)
        )
        await session.commit()
        _, total = await repo.list_orders(OrderFilters(admin_user_id=catalog["admin"]))
        assert total == 0

    async def test_list_by_user_status_payment_status(self, session, catalog):
        await _make_order(session, "ORD-4-001", user_id=catalog["buyer"])
        await _make_order(session, "ORD-4-002", status="shipped", payment_status="completed")
        repo = OrderRepository(session)
        assert [o["reference"] for o in await repo.get_orders_by_user(catalog["buyer"])] == ["ORD-4-001"]
        assert [o["reference"] for o in await repo.get_orders_by_status("shipped")] == ["ORD-4-002"]
        assert [o["reference"] for o in await repo.get_orders_by_payment_status("completed")] == ["ORD-4-002"]

    async def test_stats(self, session, catalog):
        await _make_order(session, "ORD-5-001", total="215.00", status="processing", payment_status="completed")
        await _make_order(session, "ORD-5-002", total="10.50", status="delivered", payment_status="completed")
        await _make_order(session, "ORD-5-003", total="99.99")
        deleted = await _make_order(session, "ORD-5-004", total="1000.00", payment_status="completed")
        repo = OrderRepository(session)
        await repo.delete_order(deleted.id)
        await session.commit()

        stats = await repo.get_order_stats()
        assert stats == {
            "total_orders": 3,
            "pending_payments": 1,
            "completed_payments": 2,
            "pending_orders": 1,
            "processing_orders": 1,
            "delivered_orders": 1,
            "total_revenue": Decimal("225.50"),
        }
