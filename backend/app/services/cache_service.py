"""
Redis 缓存服务：通用 get/set/delete，用于订单统计等加速
与限流共用同一 Redis 客户端（应用启动时创建），使用 key 前缀 cache: 区分
"""
import json
import logging
from typing import Any, Optional

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)

# 业务 key 约定，便于统一失效
ORDER_STATS_KEY = "orders:stats"


def create_redis_client(url: Optional[str] = None) -> Optional[redis.Redis]:
    """按配置创建 Redis 客户端；未配置 REDIS_URL 返回 None（缓存、限流随之不生效）"""
    url = url if url is not None else settings.REDIS_URL
    if not url or not url.strip():
        return None
    try:
        return redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=2)
    except Exception as e:
        logger.warning("Redis 客户端创建失败，缓存与限流将不生效: %s", e)
        return None


class OrderCache:
    """订单相关缓存。client 为空或未启用时所有操作都是空操作。"""

    def __init__(
        self,
        client: Optional[redis.Redis],
        enabled: Optional[bool] = None,
        prefix: Optional[str] = None,
        ttl: Optional[int] = None,
    ):
        self.client = client
        self.enabled = settings.CACHE_ENABLED if enabled is None else enabled
        self.prefix = settings.CACHE_KEY_PREFIX if prefix is None else prefix
        self.ttl = settings.CACHE_TTL_STATS if ttl is None else ttl

    @property
    def active(self) -> bool:
        return self.enabled and self.client is not None

    def _key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def get(self, key: str) -> Optional[Any]:
        """从缓存读取，反序列化 JSON。不存在或异常返回 None。"""
        if not self.active:
            return None
        try:
            raw = self.client.get(self._key(key))
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as e:
            logger.debug("缓存 get 失败 %s: %s", key, e)
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """写入缓存，value 会 JSON 序列化。ttl 秒，默认用 CACHE_TTL_STATS。"""
        if not self.active:
            return False
        try:
            self.client.setex(
                self._key(key),
                ttl or self.ttl,
                json.dumps(value, ensure_ascii=False, default=str),
            )
            return True
        except Exception as e:
            logger.debug("缓存 set 失败 %s: %s", key, e)
            return False

    def delete(self, key: str) -> bool:
        if not self.active:
            return False
        try:
            self.client.delete(self._key(key))
            return True
        except Exception as e:
            logger.debug("缓存 delete 失败 %s: %s", key, e)
            return False

    def invalidate_order_cache(self) -> None:
        """订单新增、状态或支付状态变更后调用：使订单统计缓存失效。"""
        self.delete(ORDER_STATS_KEY)
