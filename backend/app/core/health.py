"""
健康检查：数据库、Redis 连通性
"""
import logging
from typing import Optional, Tuple

import redis

from app.core.database import Database

logger = logging.getLogger(__name__)


async def check_db(database: Optional[Database]) -> Tuple[bool, str]:
    """检查数据库连通性"""
    if database is None:
        return False, "数据库未初始化"
    try:
        await database.ping()
        return True, "ok"
    except Exception as e:
        logger.warning("健康检查 DB 失败: %s", e)
        return False, str(e)


def check_redis(client: Optional[redis.Redis]) -> Tuple[bool, str]:
    """检查 Redis 连通性（客户端由应用启动时创建）"""
    if client is None:
        return False, "Redis 未配置"
    try:
        client.ping()
        return True, "ok"
    except Exception as e:
        logger.warning("健康检查 Redis 失败: %s", e)
        return False, str(e)
