"""
数据库连接模块 (Database Connection Module)

基于 SQLAlchemy 2.0 异步模式创建数据库引擎和会话管理。
引擎（连接池）为进程级共享资源，启动时创建、关闭时释放，所有请求复用。

Creates the database engine and session management on SQLAlchemy 2.0 async mode.
The engine (connection pool) is a process-wide resource, created at startup,
disposed at shutdown and reused by every request.
"""
import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from configlog.core.config import settings

logger = logging.getLogger(__name__)

# 存储访问失败的异常集合：asyncpg 的连接失败和语句超时不会被 SQLAlchemy 包装
STORE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


def build_engine(url: str) -> AsyncEngine:
    """
    按驱动创建异步引擎，并应用配置中的超时设置 (Create async engine with configured timeouts)

    asyncpg 额外设置 command_timeout，使单条语句超时直接失败。
    """
    connect_args = {}
    if url.startswith("postgresql+asyncpg"):
        connect_args["command_timeout"] = settings.db_command_timeout
    kwargs = {"echo": False, "connect_args": connect_args}
    if not url.startswith("sqlite"):
        kwargs["pool_timeout"] = settings.db_pool_timeout
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


# 创建异步数据库引擎 (Create Async Database Engine)
engine = build_engine(settings.database_url)

# 创建异步会话工厂 (Create Async Session Factory)
# 提交后不过期对象，写入后仍可读取自增 ID 等字段
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """
    ORM 模型基类 (ORM Model Base Class)

    SQLAlchemy 2.0 的声明式基类，所有数据模型都继承此类。
    """
    pass


async def get_db() -> AsyncSession:
    """
    FastAPI 依赖项：获取数据库会话 (FastAPI Dependency: Get Database Session)

    使用异步上下文管理器确保会话在请求结束后正确关闭，防止连接泄漏。

    Yields:
        AsyncSession: 异步数据库会话实例 (Async database session instance)
    """
    async with async_session() as session:
        yield session


async def rollback_quietly(session: AsyncSession) -> None:
    """写入失败后回滚会话；连接已断开时回滚本身的失败只记录告警。"""
    try:
        await session.rollback()
    except STORE_ERRORS as e:
        logger.warning(f"Session rollback failed after store error: {e}")
