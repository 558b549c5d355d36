"""
Redis 连接模块

管理 Redis 客户端的创建和关闭，进程内共享一个客户端（内部连接池）。
启动时由 lifespan 调用 init_redis，关闭时调用 close_redis。
"""
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from configlog.core.config import settings

logger = logging.getLogger(__name__)

# 全局 Redis 客户端实例
redis_client: redis.Redis | None = None


def _create_client() -> redis.Redis:
    return redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_connect_timeout,
        health_check_interval=30,
    )


async def init_redis() -> redis.Redis:
    """启动时创建 Redis 客户端并探测连通性；探测失败只记录告警，缓存按尽力而为处理。"""
    global redis_client
    if redis_client is None:
        redis_client = _create_client()
    try:
        await redis_client.ping()
        logger.info(f"Connected to Redis at {settings.redis_host}:{settings.redis_port}")
    except RedisError as e:
        logger.warning(f"Redis not reachable at startup, cache will be bypassed until it is: {e}")
    return redis_client


async def get_redis() -> redis.Redis:
    """获取 Redis 客户端实例，首次调用时自动创建连接。"""
    global redis_client
    if redis_client is None:
        redis_client = _create_client()
    return redis_client


async def close_redis() -> None:
    """关闭 Redis 连接，释放资源。"""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis connection closed")
