"""
Redis 单据缓存：已支付订单的账单/发票 HTML

已支付订单不可变，渲染结果按发票号/订单号缓存；未支付订单不进缓存。
缓存不可用时所有操作静默降级为未命中。
"""
import logging
from typing import Optional

from designcart.core.config import settings

logger = logging.getLogger(__name__)

_redis_client = None


def _get_redis():
    """获取 Redis 客户端（懒加载，连接失败时返回 None）"""
    global _redis_client
    if _redis_client is None:
        try:
            import redis
            _redis_client = redis.Redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_timeout=2,
            )
        except Exception as e:
            logger.warning("单据缓存 Redis 初始化失败，缓存将不生效: %s", e)
    return _redis_client


def _full_key(key: str) -> str:
    return f"{settings.CACHE_KEY_PREFIX}{key}"


def _client():
    if not settings.CACHE_ENABLED:
        return None
    return _get_redis()


def get_document(key: str) -> Optional[str]:
    """读取缓存的单据 HTML；未命中或 Redis 异常返回 None"""
    r = _client()
    if r is None:
        return None
    try:
        return r.get(_full_key(key))
    except Exception as e:
        logger.debug("单据缓存读取失败 %s: %s", key, e)
        return None


def set_document(key: str, html: str, ttl: Optional[int] = None) -> bool:
    """写入单据 HTML，ttl 秒，默认 CACHE_TTL_DOCUMENT"""
    r = _client()
    if r is None:
        return False
    try:
        r.setex(_full_key(key), ttl or settings.CACHE_TTL_DOCUMENT, html)
        return True
    except Exception as e:
        logger.debug("单据缓存写入失败 %s: %s", key, e)
        return False


# ---------- 单据 key 约定 ---------- #
def key_invoice_document(invoice_number: str, user_id: int) -> str:
    return f"doc:invoice:{invoice_number}:{user_id}"


def key_bill_document(order_id: str) -> str:
    return f"doc:bill:{order_id}"
