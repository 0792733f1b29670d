"""
配送方式仓储：把配送方式 id 解析为运费
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.delivery_option import DeliveryOption


class DeliveryOptionRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, option_id: int) -> Optional[DeliveryOption]:
        result = await self.db.execute(
            select(DeliveryOption).where(
                DeliveryOption.id == option_id,
                DeliveryOption.is_deleted.is_(False),
            )
        )
        return result.scalar_one_or_none()
