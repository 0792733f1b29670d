"""
下单限流：按客户端 IP 限制每分钟下单次数，使用 Redis 计数
"""
import time
import logging
from typing import Optional

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)


def check_and_incr_checkout(client: Optional[redis.Redis], client_ip: str) -> tuple[bool, int, int]:
    """
    检查并增加当前分钟的下单计数。返回 (是否允许, 当前计数, 每分钟上限)。
    若未启用限流或 Redis 不可用，返回 (True, 0, limit)。
    """
    limit = settings.RATE_LIMIT_CHECKOUT_PER_MINUTE
    if not settings.RATE_LIMIT_ENABLED or client is None:
        return True, 0, limit
    minute = int(time.time() // 60)
    key = f"rate:checkout:ip:{client_ip}:min:{minute}"
    try:
        n = client.incr(key)
        if n == 1:
            client.expire(key, 120)
        return (n <= limit, n, limit)
    except Exception as e:
        logger.warning("限流 Redis 操作失败: %s", e)
        return True, 0, limit
