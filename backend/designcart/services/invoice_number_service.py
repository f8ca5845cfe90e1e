"""
发票号服务

每次支付验签（一次结算）只生成一个发票号，由该批所有订单共享。
主路径为事务内自增的计数器；计数器失败时按指数退避重试，
全部失败后退化为基于时间戳的本地发票号，并对已有订单做碰撞检查。
"""
import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update, text, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from designcart.core.config import settings
from designcart.models.invoice_counter import InvoiceCounter
from designcart.models.order import Order

logger = logging.getLogger(__name__)

_SQL_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")

# 回退发票号碰撞时最多尝试的后缀数
MAX_FALLBACK_SUFFIX = 20


def format_invoice_number(period: str, sequence: int, prefix: Optional[str] = None) -> str:
    """INV-YYYYMM-0001"""
    return f"{prefix or settings.INVOICE_PREFIX}-{period}-{sequence:04d}"


def fallback_invoice_number(now: Optional[datetime] = None, prefix: Optional[str] = None) -> str:
    """本地回退发票号：年月 + 当前毫秒时间戳末 4 位。不保证全局唯一。"""
    now = now or datetime.now(timezone.utc)
    millis = str(int(now.timestamp() * 1000))
    return f"{prefix or settings.INVOICE_PREFIX}-{now.strftime('%Y%m')}-{millis[-4:]}"


class InvoiceNumberService:
    """发票号服务类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def next_invoice_number(self) -> str:
        """获取一个发票号；永不抛错，计数器不可用时返回回退发票号"""
        attempts = max(1, settings.INVOICE_COUNTER_MAX_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            try:
                number = await self._from_counter()
                logger.info("发票号已生成: %s", number)
                return number
            except (SQLAlchemyError, ValueError) as e:
                await self._safe_rollback()
                logger.warning("发票号计数器失败（第 %d/%d 次）: %s", attempt, attempts, e)
                if attempt < attempts:
                    await asyncio.sleep(settings.INVOICE_COUNTER_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        number = await self._collision_checked_fallback()
        logger.warning("发票号计数器不可用，使用回退发票号: %s", number)
        return number

    async def _from_counter(self) -> str:
        function_name = settings.INVOICE_NUMBER_SQL_FUNCTION.strip()
        if function_name:
            return await self._from_sql_function(function_name)

        period = datetime.now(timezone.utc).strftime("%Y%m")
        result = await self.db.execute(
            update(InvoiceCounter)
            .where(InvoiceCounter.period == period)
            .values(value=InvoiceCounter.value + 1)
            .returning(InvoiceCounter.value)
        )
        value = result.scalar_one_or_none()
        if value is None:
            # 本月第一张发票；并发插入时主键冲突，由上层重试走 UPDATE 分支
            self.db.add(InvoiceCounter(period=period, value=1))
            await self.db.flush()
            value = 1
        await self.db.commit()
        return format_invoice_number(period, value)

    async def _from_sql_function(self, function_name: str) -> str:
        """调用数据库端的发票号函数，如 generate_invoice_number()"""
        if not _SQL_IDENTIFIER.match(function_name):
            raise ValueError(f"非法的发票号函数名: {function_name}")
        number = (await self.db.execute(text(f"SELECT {function_name}()"))).scalar_one()
        await self.db.commit()
        if not number:
            raise SQLAlchemyError("发票号函数返回空值")
        return str(number)

    async def _collision_checked_fallback(self) -> str:
        """回退发票号与已有订单的发票号冲突时追加 -1、-2 ... 后缀"""
        base = fallback_invoice_number()
        candidates = [base] + [f"{base}-{suffix}" for suffix in range(1, MAX_FALLBACK_SUFFIX + 1)]
        candidate = base
        try:
            for candidate in candidates:
                if not await self._invoice_number_exists(candidate):
                    return candidate
        except SQLAlchemyError as e:
            await self._safe_rollback()
            logger.warning("回退发票号碰撞检查失败，直接使用 %s: %s", candidate, e)
            return candidate
        # 全部候选都已被占用，只能返回一个重复的发票号
        logger.error("回退发票号 %s 及后缀 -1~-%d 均已存在，使用重复的 %s", base, MAX_FALLBACK_SUFFIX, candidate)
        return candidate

    async def _invoice_number_exists(self, number: str) -> bool:
        count = (
            await self.db.execute(
                select(func.count()).select_from(Order).where(Order.invoice_number == number)
            )
        ).scalar()
        return bool(count)

    async def _safe_rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.debug("回滚失败: %s", e)
