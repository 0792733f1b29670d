"""
订单仓储：订单与订单明细的持久化、按引用号查询、筛选分页、状态更新、软删除

所有读取均排除已软删除的记录。查询结果以 dict 返回，附带配送方式名称、下单用户等关联字段。
"""
import random
import string
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.delivery_option import DeliveryOption
from app.models.order import Order, OrderItem
from app.models.product import Product
from app.models.user import User
from app.schemas.order import OrderFilters, OrderPagination, OrderStatus, PaymentStatus

# 允许通过 update_order 修改的字段（metadata 对应模型属性 order_metadata）
UPDATABLE_FIELDS = {
    "status": "status",
    "payment_status": "payment_status",
    "payment_reference": "payment_reference",
    "delivery_address": "delivery_address",
    "metadata": "order_metadata",
}

_ORDER_COLUMNS = (
    "id", "user_id", "quantity", "subtotal", "delivery_cost", "total_price",
    "delivery_option_id", "status", "payment_status", "payment_reference", "reference",
    "delivery_address", "customer_email", "customer_phone", "customer_name", "created_at",
)


def _order_record(order: Order, **extra: Any) -> Dict[str, Any]:
    record = {name: getattr(order, name) for name in _ORDER_COLUMNS}
    record["metadata"] = order.order_metadata
    record.update(extra)
    return record


def _plain(value: Any) -> Any:
    """枚举取值，其它原样返回"""
    return value.value if hasattr(value, "value") else value


class OrderRepository:
    """订单仓储"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ---------- 写入 ---------- #
    async def create_order(self, row: Dict[str, Any]) -> Order:
        """插入订单（flush 以拿到 id，由调用方决定提交时机）"""
        data = dict(row)
        if "metadata" in data:
            data["order_metadata"] = data.pop("metadata")
        order = Order(**data)
        self.db.add(order)
        await self.db.flush()
        return order

    async def create_order_items(self, rows: List[Dict[str, Any]]) -> List[OrderItem]:
        """批量插入订单明细"""
        items = [OrderItem(**row) for row in rows]
        self.db.add_all(items)
        await self.db.flush()
        return items

    async def update_order(self, order_id: int, partial: Dict[str, Any]) -> bool:
        """部分更新；返回是否命中未删除的订单"""
        values = {
            UPDATABLE_FIELDS[key]: _plain(value)
            for key, value in partial.items()
            if key in UPDATABLE_FIELDS
        }
        if not values:
            return await self.exists(order_id)
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.is_deleted.is_(False))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_order_payment_status(
        self,
        order_id: int,
        payment_status: PaymentStatus | str,
        payment_reference: Optional[str] = None,
    ) -> bool:
        """只更新支付相关字段"""
        partial: Dict[str, Any] = {"payment_status": payment_status}
        if payment_reference:
            partial["payment_reference"] = payment_reference
        return await self.update_order(order_id, partial)

    async def advance_status(
        self,
        order_id: int,
        from_status: OrderStatus | str,
        to_status: OrderStatus | str,
        **extra: Any,
    ) -> bool:
        """
        条件状态迁移：仅当当前 status 等于 from_status 时更新。
        并发或重复调用时只有一次返回 True。
        """
        values = {"status": _plain(to_status)}
        values.update({UPDATABLE_FIELDS[k]: _plain(v) for k, v in extra.items() if k in UPDATABLE_FIELDS})
        result = await self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.is_deleted.is_(False),
                Order.status == _plain(from_status),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete_order(self, order_id: int) -> bool:
        """软删除：标记删除并给 reference 追加随机后缀，释放唯一约束占用的引用号"""
        reference = await self.db.scalar(
            select(Order.reference).where(Order.id == order_id, Order.is_deleted.is_(False))
        )
        if reference is None:
            return False
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.is_deleted.is_(False))
            .values(
                is_deleted=True,
                deleted_at=datetime.now(timezone.utc),
                reference=f"{reference}_deleted_{int(time.time() * 1000)}_{suffix}",
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ---------- 读取 ---------- #
    async def exists(self, order_id: int) -> bool:
        found = await self.db.scalar(
            select(Order.id).where(Order.id == order_id, Order.is_deleted.is_(False))
        )
        return found is not None

    async def get_order_by_id(self, order_id: int) -> Optional[Dict[str, Any]]:
        """按 id 查询，关联配送方式名称与下单用户"""
        stmt = (
            select(
                Order,
                DeliveryOption.name.label("delivery_option_name"),
                User.username.label("user_username"),
                User.email.label("user_email"),
            )
            .outerjoin(DeliveryOption, Order.delivery_option_id == DeliveryOption.id)
            .outerjoin(User, Order.user_id == User.id)
            .where(Order.id == order_id, Order.is_deleted.is_(False))
            .execution_options(populate_existing=True)
        )
        row = (await self.db.execute(stmt)).first()
        if row is None:
            return None
        return _order_record(
            row.Order,
            delivery_option_name=row.delivery_option_name,
            user_username=row.user_username,
            user_email=row.user_email,
        )

    async def get_order_by_reference(self, reference: str) -> Optional[Dict[str, Any]]:
        """按引用号查询（Webhook 对账唯一依据）"""
        stmt = (
            select(Order, DeliveryOption.name.label("delivery_option_name"))
            .outerjoin(DeliveryOption, Order.delivery_option_id == DeliveryOption.id)
            .where(Order.reference == reference, Order.is_deleted.is_(False))
            .execution_options(populate_existing=True)
        )
        row = (await self.db.execute(stmt)).first()
        if row is None:
            return None
        return _order_record(row.Order, delivery_option_name=row.delivery_option_name)

    async def get_order_items(self, order_id: int) -> List[Dict[str, Any]]:
        """订单明细，附带商品名称、描述、图片"""
        stmt = (
            select(
                OrderItem,
                Product.name.label("product_name"),
                Product.description.label("product_description"),
                Product.images.label("product_images"),
            )
            .outerjoin(Product, OrderItem.product_id == Product.id)
            .where(OrderItem.order_id == order_id, OrderItem.is_deleted.is_(False))
            .order_by(OrderItem.id)
        )
        rows = (await self.db.execute(stmt)).all()
        return [
            {
                "id": row.OrderItem.id,
                "order_id": row.OrderItem.order_id,
                "product_id": row.OrderItem.product_id,
                "quantity": row.OrderItem.quantity,
                "price": row.OrderItem.price,
                "created_at": row.OrderItem.created_at,
                "product_name": row.product_name,
                "product_description": row.product_description,
                "product_images": row.product_images,
            }
            for row in rows
        ]

    def _filtered(self, stmt, filters: OrderFilters):
        conditions = [Order.is_deleted.is_(False)]
        if filters.user_id is not None:
            conditions.append(Order.user_id == filters.user_id)
        if filters.status is not None:
            conditions.append(Order.status == _plain(filters.status))
        if filters.payment_status is not None:
            conditions.append(Order.payment_status == _plain(filters.payment_status))
        if filters.customer_email:
            conditions.append(Order.customer_email.ilike(f"%{filters.customer_email}%"))
        if filters.date_from is not None:
            conditions.append(Order.created_at >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(Order.created_at <= filters.date_to)
        if filters.admin_user_id is not None:
            # 普通管理员：仅包含至少一件自己创建的商品的订单
            own_product_orders = (
                select(OrderItem.order_id)
                .join(Product, OrderItem.product_id == Product.id)
                .where(
                    Product.created_by == filters.admin_user_id,
                    OrderItem.is_deleted.is_(False),
                    Product.is_deleted.is_(False),
                )
            )
            conditions.append(Order.id.in_(own_product_orders))
        return stmt.where(and_(*conditions))

    async def list_orders(
        self,
        filters: Optional[OrderFilters] = None,
        pagination: Optional[OrderPagination] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """筛选 + 排序 + 分页，返回 (当前页订单, 总数)"""
        filters = filters or OrderFilters()
        pagination = pagination or OrderPagination()

        total = await self.db.scalar(
            self._filtered(select(func.count()).select_from(Order), filters)
        ) or 0

        sort_column = getattr(Order, _plain(pagination.sort_by))
        ordering = sort_column.asc() if _plain(pagination.sort_order) == "asc" else sort_column.desc()
        stmt = self._filtered(
            select(
                Order,
                DeliveryOption.name.label("delivery_option_name"),
                User.username.label("user_username"),
                User.email.label("user_email"),
            )
            .outerjoin(DeliveryOption, Order.delivery_option_id == DeliveryOption.id)
            .outerjoin(User, Order.user_id == User.id),
            filters,
        )
        stmt = (
            stmt.order_by(ordering, Order.id.desc())
            .offset((pagination.page - 1) * pagination.limit)
            .limit(pagination.limit)
        )
        rows = (await self.db.execute(stmt)).all()
        orders = [
            _order_record(
                row.Order,
                delivery_option_name=row.delivery_option_name,
                user_username=row.user_username,
                user_email=row.user_email,
            )
            for row in rows
        ]
        return orders, int(total)

    async def _list_where(self, condition, limit: int) -> List[Dict[str, Any]]:
        stmt = (
            select(Order, DeliveryOption.name.label("delivery_option_name"))
            .outerjoin(DeliveryOption, Order.delivery_option_id == DeliveryOption.id)
            .where(condition, Order.is_deleted.is_(False))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
        )
        rows = (await self.db.execute(stmt)).all()
        return [_order_record(row.Order, delivery_option_name=row.delivery_option_name) for row in rows]

    async def get_orders_by_user(self, user_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        return await self._list_where(Order.user_id == user_id, limit)

    async def get_orders_by_status(self, status: OrderStatus | str, limit: int = 50) -> List[Dict[str, Any]]:
        return await self._list_where(Order.status == _plain(status), limit)

    async def get_orders_by_payment_status(
        self, payment_status: PaymentStatus | str, limit: int = 50
    ) -> List[Dict[str, Any]]:
        return await self._list_where(Order.payment_status == _plain(payment_status), limit)

    async def get_order_stats(self) -> Dict[str, Any]:
        """订单统计：数量按状态计数，营收只算已完成支付的订单"""

        def _count_when(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        stmt = select(
            func.count(Order.id).label("total_orders"),
            _count_when(Order.payment_status == PaymentStatus.PENDING.value).label("pending_payments"),
            _count_when(Order.payment_status == PaymentStatus.COMPLETED.value).label("completed_payments"),
            _count_when(Order.status == OrderStatus.PENDING.value).label("pending_orders"),
            _count_when(Order.status == OrderStatus.PROCESSING.value).label("processing_orders"),
            _count_when(Order.status == OrderStatus.DELIVERED.value).label("delivered_orders"),
            func.coalesce(
                func.sum(case((Order.payment_status == PaymentStatus.COMPLETED.value, Order.total_price), else_=0)),
                0,
            ).label("total_revenue"),
        ).where(Order.is_deleted.is_(False))
        row = (await self.db.execute(stmt)).one()
        return {
            "total_orders": int(row.total_orders or 0),
            "pending_payments": int(row.pending_payments or 0),
            "completed_payments": int(row.completed_payments or 0),
            "pending_orders": int(row.pending_orders or 0),
            "processing_orders": int(row.processing_orders or 0),
            "delivered_orders": int(row.delivered_orders or 0),
            "total_revenue": Decimal(str(row.total_revenue or 0)).quantize(Decimal("0.01")),
        }

    @staticmethod
    def generate_order_reference() -> str:
        """ORD-<毫秒时间戳>-<三位随机数>，唯一性由数据库唯一约束兜底"""
        return f"ORD-{int(time.time() * 1000)}-{random.randint(0, 999):03d}"
