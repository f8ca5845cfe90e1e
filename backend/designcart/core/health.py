"""
健康检查：数据库、单据缓存 Redis、支付网关凭据
每项返回 (是否正常, 说明)
"""
import logging
from typing import Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from designcart.core.config import settings
from designcart.core.database import engine

logger = logging.getLogger(__name__)


async def check_db() -> Tuple[bool, str]:
    """执行 SELECT 1"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("健康检查 DB 失败: %s", e)
        return False, str(e)
    return True, "ok"


def check_redis() -> Tuple[bool, str]:
    """单据缓存未启用时视为正常"""
    if not settings.CACHE_ENABLED:
        return True, "缓存未启用"
    from designcart.services.cache_service import _get_redis
    r = _get_redis()
    if r is None:
        return False, "Redis 客户端未初始化"
    try:
        r.ping()
    except Exception as e:
        logger.warning("健康检查 Redis 失败: %s", e)
        return False, str(e)
    return True, "ok"


def check_gateway() -> Tuple[bool, str]:
    """只检查凭据是否配置，不发起远程调用"""
    if settings.razorpay_configured:
        return True, "ok"
    return False, "RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET 未配置"
