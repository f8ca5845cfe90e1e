"""
数据库连接：异步引擎、会话工厂与 ORM 基类
"""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from designcart.core.config import settings

# 测试中使用 NullPool，避免连接跨事件循环复用
_engine_kwargs = {"poolclass": NullPool} if settings.DATABASE_NULLPOOL else {"pool_pre_ping": True}
engine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs)

# 提交后不过期对象，服务层在 commit 之后仍可读取订单字段
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI 依赖：每个请求一个会话"""
    async with AsyncSessionLocal() as session:
        yield session
