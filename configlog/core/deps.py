"""
FastAPI 依赖项模块 (FastAPI Dependencies Module)

把进程级共享的数据库会话工厂和 Redis 客户端注入到协调器中，
路由只依赖协调器，测试可通过 dependency_overrides 替换 get_db / get_redis。

Injects the process-wide session factory and Redis client into the
coordinators; tests swap get_db / get_redis through dependency_overrides.
"""
from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from configlog.core.database import get_db
from configlog.core.redis import get_redis
from configlog.services.config_service import ConfigurationService
from configlog.services.log_service import LogService


async def get_configuration_service(
    db: AsyncSession = Depends(get_db),
    cache: Redis = Depends(get_redis),
) -> ConfigurationService:
    """构造请求级配置协调器。"""
    return ConfigurationService(db, cache)


async def get_log_service(
    db: AsyncSession = Depends(get_db),
    cache: Redis = Depends(get_redis),
) -> LogService:
    """构造请求级日志协调器。"""
    return LogService(db, cache)
