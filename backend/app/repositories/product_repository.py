"""
商品仓储（订单只用到的窄接口）：按 id 查询、库存检查、原子增减库存
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.product import Product

logger = logging.getLogger(__name__)


class StockDirection(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


class ProductRepository:
    """商品仓储"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        """获取未删除的商品"""
        result = await self.db.execute(
            select(Product).where(Product.id == product_id, Product.is_deleted.is_(False))
        )
        return result.scalar_one_or_none()

    async def check_availability(self, product_id: int, quantity: int) -> Dict[str, Any]:
        """检查库存是否满足下单数量"""
        stock = await self.db.scalar(
            select(Product.stock).where(Product.id == product_id, Product.is_deleted.is_(False))
        )
        if stock is None:
            return {"available": False, "reason": "Product not found"}
        if stock < quantity:
            return {"available": False, "reason": "Insufficient stock", "available_stock": stock}
        return {"available": True, "available_stock": stock}

    async def decrease_stock(self, product_id: int, quantity: int) -> bool:
        """
        条件扣减库存：仅当 stock >= quantity 时扣减，单条 UPDATE 完成检查与写入。
        返回 False 表示库存已被并发订单占用（或商品不存在），库存不会变为负数。
        """
        result = await self.db.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.is_deleted.is_(False),
                Product.stock >= quantity,
            )
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def increase_stock(self, product_id: int, quantity: int) -> bool:
        """归还库存（取消订单时使用）"""
        result = await self.db.execute(
            update(Product)
            .where(Product.id == product_id, Product.is_deleted.is_(False))
            .values(stock=Product.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("归还库存失败，商品不存在或已删除: product_id=%s quantity=%s", product_id, quantity)
            return False
        return True

    async def adjust_stock(self, product_id: int, quantity: int, direction: StockDirection) -> bool:
        if StockDirection(direction) is StockDirection.INCREASE:
            return await self.increase_stock(product_id, quantity)
        return await self.decrease_stock(product_id, quantity)

    async def get_stock(self, product_id: int) -> Optional[int]:
        return await self.db.scalar(select(Product.stock).where(Product.id == product_id))
