"""
客户仓储：按邮箱查询、创建客户（游客下单自动注册使用）
"""
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.customer import Customer


class CustomerRepository:
    """客户仓储"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email: str) -> Optional[Customer]:
        """邮箱不区分大小写"""
        result = await self.db.execute(
            select(Customer).where(
                func.lower(Customer.email) == email.lower(),
                Customer.is_deleted.is_(False),
            )
        )
        return result.scalar_one_or_none()

    async def create(self, fields: Dict[str, Any]) -> Customer:
        """创建客户，password 需为已哈希的值"""
        customer = Customer(**fields)
        self.db.add(customer)
        await self.db.flush()
        return customer
