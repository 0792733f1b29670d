"""
订单服务：下单、查询、更新、取消、软删除

错误处理约定：
- 校验阶段（商品、库存、配送方式）失败抛 NotFoundError / InsufficientStockError，此时尚未写库；
- 订单提交之后的外部调用（支付网关初始化、通知、游客自动注册）失败只记录日志，不回滚订单。
"""
import asyncio
import logging
import secrets
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError, InsufficientStockError, NotFoundError, OrderStateError
from app.repositories import CustomerRepository, DeliveryOptionRepository, OrderRepository, ProductRepository
from app.schemas.order import (
    OrderCreate,
    OrderFilters,
    OrderItemResponse,
    OrderListResponse,
    OrderPagination,
    OrderResponse,
    OrderStatsResponse,
    OrderStatus,
    OrderUpdate,
    PaginationInfo,
    PaymentStatus,
    PaystackInitData,
)
from app.services.cache_service import ORDER_STATS_KEY, OrderCache
from app.services.auth_service import hash_password
from app.services.notification_service import OrderNotifier
from app.services.paystack_service import PaystackClient

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
PASSWORD_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789!@#$%^&*"


def to_money(value: Any) -> Decimal:
    """统一转为两位小数的 Decimal"""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Any) -> Optional[str]:
    if value is None:
        return None
    return f"{to_money(value):.2f}"


def to_minor_units(value: Any) -> int:
    """金额转为最小货币单位（×100 四舍五入）"""
    return int((to_money(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def generate_random_password(length: int = 12) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def format_order(order: Dict[str, Any], items: Optional[List[Dict[str, Any]]] = None) -> OrderResponse:
    """仓储记录 -> 响应模型（金额以字符串表示）"""
    return OrderResponse(
        id=order["id"],
        user_id=order.get("user_id"),
        quantity=order["quantity"],
        subtotal=format_money(order.get("subtotal")) or "0.00",
        delivery_cost=format_money(order.get("delivery_cost")),
        total_price=format_money(order["total_price"]),
        delivery_option_id=order.get("delivery_option_id"),
        delivery_option_name=order.get("delivery_option_name"),
        status=order["status"],
        payment_status=order["payment_status"],
        payment_reference=order.get("payment_reference"),
        reference=order["reference"],
        delivery_address=order.get("delivery_address"),
        customer_email=order.get("customer_email"),
        customer_phone=order.get("customer_phone"),
        customer_name=order.get("customer_name"),
        metadata=order.get("metadata"),
        created_at=order.get("created_at"),
        user_username=order.get("user_username"),
        user_email=order.get("user_email"),
        items=[
            OrderItemResponse(
                id=item["id"],
                order_id=item["order_id"],
                product_id=item["product_id"],
                product_name=item.get("product_name"),
                product_description=item.get("product_description"),
                product_images=item.get("product_images"),
                quantity=item["quantity"],
                price=format_money(item["price"]),
                created_at=item.get("created_at"),
            )
            for item in (items or [])
        ],
    )


class OrderService:
    """订单服务类"""

    def __init__(
        self,
        db: AsyncSession,
        payment_gateway: Optional[PaystackClient] = None,
        notifier: Optional[OrderNotifier] = None,
        cache: Optional[OrderCache] = None,
    ):
        self.db = db
        self.orders = OrderRepository(db)
        self.products = ProductRepository(db)
        self.delivery_options = DeliveryOptionRepository(db)
        self.customers = CustomerRepository(db)
        self.payment_gateway = payment_gateway
        self.notifier = notifier
        self.cache = cache

    # ---------- 下单 ---------- #
    async def create_order(self, data: OrderCreate) -> OrderResponse:
        """创建订单"""
        # 1. 校验商品与库存，按当前价格锁定单价
        item_rows: List[Dict[str, Any]] = []
        subtotal = Decimal("0.00")
        total_quantity = 0
        for item in data.items:
            product = await self.products.get_by_id(item.product_id)
            if not product:
                raise NotFoundError(f"商品不存在: {item.product_id}")
            availability = await self.products.check_availability(item.product_id, item.quantity)
            if not availability["available"]:
                raise InsufficientStockError(product.name, availability.get("available_stock"), product.id)
            unit_price = to_money(product.price)
            subtotal += unit_price * item.quantity
            total_quantity += item.quantity
            item_rows.append({"product_id": item.product_id, "quantity": item.quantity, "price": unit_price})

        # 2. 配送费
        delivery_cost = Decimal("0.00")
        if data.delivery_option_id:
            option = await self.delivery_options.get_by_id(data.delivery_option_id)
            if not option:
                raise NotFoundError(f"配送方式不存在: {data.delivery_option_id}")
            delivery_cost = to_money(option.amount)

        # 3. 总价
        subtotal = to_money(subtotal)
        total_price = subtotal + delivery_cost

        # 5-7. 订单、明细、扣库存在同一事务内
        order = await self._persist_order(data, item_rows, subtotal, delivery_cost, total_price, total_quantity)
        await self.db.commit()
        order_id, reference = order.id, order.reference
        await self._invalidate_cache()
        logger.info(
            "订单已创建: id=%s reference=%s total=%s items=%s",
            order_id, reference, total_price, len(item_rows),
        )

        # 4. 游客自动注册（在订单提交之后进行，失败不影响订单）
        customer_id = None
        customer_registered = False
        if not data.user_id and data.customer_email:
            customer_id, customer_registered = await self._register_guest(data)

        # 8. 初始化支付（失败只记录日志）
        paystack_data = None
        if data.customer_email:
            paystack_data = await self._initialize_payment(order_id, reference, str(data.customer_email), total_price, data)

        # 9. 返回完整订单
        response = await self.get_order_by_id(order_id)
        if paystack_data:
            response.paystack_response = PaystackInitData(**paystack_data)
            response.paystack_authorization_url = paystack_data.get("authorization_url")
            response.paystack_access_code = paystack_data.get("access_code")
        if customer_id is not None:
            response.customer_registered = customer_registered
            response.customer_id = customer_id
        return response

    async def _register_guest(self, data: OrderCreate) -> Tuple[Optional[int], bool]:
        """返回 (客户 id, 是否本次新注册)；已有客户只做关联，不重复注册"""
        email = str(data.customer_email)
        try:
            existing = await self.customers.get_by_email(email)
            if existing:
                return existing.id, False
            if not (data.customer_password or data.register_customer):
                return None, False
            password = data.customer_password or generate_random_password()
            first_name, _, last_name = (data.customer_name or "").strip().partition(" ")
            customer = await self.customers.create({
                "first_name": first_name,
                "last_name": last_name.strip(),
                "phone": data.customer_phone,
                "address": data.delivery_address,
                "email": email,
                "password": hash_password(password),
            })
            await self.db.commit()
            logger.info("游客已自动注册为客户: %s", email)
            return customer.id, True
        except Exception as e:
            logger.error("游客自动注册失败 email=%s: %s", email, e)
            await self.db.rollback()
            return None, False

    async def _persist_order(
        self,
        data: OrderCreate,
        item_rows: List[Dict[str, Any]],
        subtotal: Decimal,
        delivery_cost: Decimal,
        total_price: Decimal,
        total_quantity: int,
    ):
        reference = self.orders.generate_order_reference()
        try:
            try:
                order = await self.orders.create_order({
                    "user_id": data.user_id or None,
                    "quantity": total_quantity,
                    "subtotal": subtotal,
                    "delivery_cost": delivery_cost if delivery_cost > 0 else None,
                    "total_price": total_price,
                    "delivery_option_id": data.delivery_option_id or None,
                    "status": OrderStatus.PENDING.value,
                    "payment_status": PaymentStatus.PENDING.value,
                    "reference": reference,
                    "delivery_address": data.delivery_address,
                    "customer_email": str(data.customer_email) if data.customer_email else None,
                    "customer_phone": data.customer_phone,
                    "customer_name": data.customer_name,
                    "metadata": data.metadata,
                })
            except IntegrityError as e:
                # 引用号唯一约束冲突（同一毫秒内随机数相同）
                raise ConflictError(f"订单引用号冲突，请重试: {reference}") from e
            await self.orders.create_order_items([{**row, "order_id": order.id} for row in item_rows])
            for row in item_rows:
                # 条件扣减：校验之后被并发订单抢走库存时整单回滚
                if not await self.products.decrease_stock(row["product_id"], row["quantity"]):
                    product = await self.products.get_by_id(row["product_id"])
                    available = await self.products.get_stock(row["product_id"])
                    logger.warning(
                        "扣减库存失败（并发下单）: product_id=%s quantity=%s available=%s",
                        row["product_id"], row["quantity"], available,
                    )
                    raise InsufficientStockError(
                        product.name if product else str(row["product_id"]),
                        available,
                        row["product_id"],
                    )
        except Exception:
            await self.db.rollback()
            raise
        return order

    async def _initialize_payment(
        self,
        order_id: int,
        reference: str,
        email: str,
        total_price: Decimal,
        data: OrderCreate,
    ) -> Optional[Dict[str, Any]]:
        if self.payment_gateway is None:
            logger.warning("未配置支付网关，订单 %s 跳过支付初始化", reference)
            return None
        try:
            paystack_data = await self.payment_gateway.initialize_transaction(
                email=email,
                amount=to_minor_units(total_price),
                currency=settings.PAYSTACK_CURRENCY,
                reference=reference,
                callback_url=settings.paystack_callback_url,
                metadata={
                    "order_id": order_id,
                    "customer_name": data.customer_name,
                    "delivery_address": data.delivery_address,
                },
            )
        except Exception as e:
            logger.error("支付初始化失败，订单保留为待支付: reference=%s error=%s", reference, e)
            return None

        # 交易已初始化，支付完成由 Webhook 确认；状态写入失败时订单保持 pending，仍把支付链接返回给客户端
        try:
            await self.orders.update_order_payment_status(
                order_id,
                PaymentStatus.PROCESSING,
                paystack_data.get("reference") or reference,
            )
            await self.db.commit()
        except Exception as e:
            logger.error("支付状态写入失败: reference=%s error=%s", reference, e)
            await self.db.rollback()
        return paystack_data

    # ---------- 查询 ---------- #
    async def get_order_by_id(self, order_id: int) -> OrderResponse:
        order = await self.orders.get_order_by_id(order_id)
        if not order:
            raise NotFoundError("订单不存在")
        items = await self.orders.get_order_items(order_id)
        return format_order(order, items)

    async def get_order_by_reference(self, reference: str) -> OrderResponse:
        order = await self.orders.get_order_by_reference(reference)
        if not order:
            raise NotFoundError("订单不存在")
        items = await self.orders.get_order_items(order["id"])
        return format_order(order, items)

    async def list_orders(
        self,
        filters: Optional[OrderFilters] = None,
        pagination: Optional[OrderPagination] = None,
    ) -> OrderListResponse:
        filters = filters or OrderFilters()
        pagination = pagination or OrderPagination()
        orders, total = await self.orders.list_orders(filters, pagination)
        data = [format_order(order, await self.orders.get_order_items(order["id"])) for order in orders]
        pages = (total + pagination.limit - 1) // pagination.limit if total else 0
        return OrderListResponse(
            data=data,
            pagination=PaginationInfo(page=pagination.page, limit=pagination.limit, total=total, pages=pages),
            filters_applied=filters.model_dump(mode="json", exclude_none=True),
        )

    async def get_orders_by_user(self, user_id: int, limit: int = 10) -> List[OrderResponse]:
        orders = await self.orders.get_orders_by_user(user_id, limit)
        return [format_order(order) for order in orders]

    async def get_orders_by_status(self, status: OrderStatus, limit: int = 50) -> List[OrderResponse]:
        orders = await self.orders.get_orders_by_status(status, limit)
        return [format_order(order, await self.orders.get_order_items(order["id"])) for order in orders]

    async def get_orders_by_payment_status(self, payment_status: PaymentStatus, limit: int = 50) -> List[OrderResponse]:
        orders = await self.orders.get_orders_by_payment_status(payment_status, limit)
        return [format_order(order, await self.orders.get_order_items(order["id"])) for order in orders]

    async def get_order_stats(self) -> OrderStatsResponse:
        """订单统计，命中缓存时不查库"""
        if self.cache is not None:
            cached = await asyncio.to_thread(self.cache.get, ORDER_STATS_KEY)
            if cached is not None:
                return OrderStatsResponse(**cached)
        stats = await self.orders.get_order_stats()
        response = OrderStatsResponse(**{**stats, "total_revenue": format_money(stats["total_revenue"])})
        if self.cache is not None:
            await asyncio.to_thread(self.cache.set, ORDER_STATS_KEY, response.model_dump())
        return response

    # ---------- 更新 / 取消 / 删除 ---------- #
    async def update_order(self, order_id: int, updates: OrderUpdate) -> OrderResponse:
        """部分更新；状态变化时通知客户（尽力而为）"""
        existing = await self.orders.get_order_by_id(order_id)
        if not existing:
            raise NotFoundError("订单不存在")
        partial = updates.model_dump(exclude_unset=True, exclude_none=True)
        await self.orders.update_order(order_id, partial)
        await self.db.commit()
        await self._invalidate_cache()

        new_status = partial.get("status")
        if new_status is not None and self.notifier is not None:
            new_status = getattr(new_status, "value", new_status)
            if new_status != existing["status"]:
                await self.notifier.status_changed(existing, new_status)
        return await self.get_order_by_id(order_id)

    async def cancel_order(self, order_id: int) -> OrderResponse:
        """
        取消订单：已取消、已送达不可取消。
        pending 状态下归还全部明细库存；已进入后续状态的订单只改状态。
        已完成支付的改为 refunded，否则改为 failed。
        """
        existing = await self.orders.get_order_by_id(order_id)
        if not existing:
            raise NotFoundError("订单不存在")
        if existing["status"] == OrderStatus.CANCELLED.value:
            raise OrderStateError("订单已取消")
        if existing["status"] == OrderStatus.DELIVERED.value:
            raise OrderStateError("已送达的订单不能取消")

        payment_status = (
            PaymentStatus.REFUNDED
            if existing["payment_status"] == PaymentStatus.COMPLETED.value
            else PaymentStatus.FAILED
        )
        try:
            # 以当前状态为条件更新，避免并发取消重复归还库存
            moved = await self.orders.advance_status(
                order_id, existing["status"], OrderStatus.CANCELLED, payment_status=payment_status
            )
            if not moved:
                raise OrderStateError("订单状态已变化，请刷新后重试")
            if existing["status"] == OrderStatus.PENDING.value:
                for item in await self.orders.get_order_items(order_id):
                    await self.products.increase_stock(item["product_id"], item["quantity"])
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self._invalidate_cache()
        logger.info("订单已取消: id=%s reference=%s", order_id, existing["reference"])
        return await self.get_order_by_id(order_id)

    async def delete_order(self, order_id: int) -> None:
        if not await self.orders.delete_order(order_id):
            raise NotFoundError("订单不存在")
        await self.db.commit()
        await self._invalidate_cache()

    async def _invalidate_cache(self) -> None:
        if self.cache is None:
            return
        try:
            await asyncio.to_thread(self.cache.invalidate_order_cache)
        except Exception as e:
            logger.debug("订单缓存失效失败: %s", e)
