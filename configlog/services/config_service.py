"""
配置中心服务 (Configuration Store Service)

实现配置映射的 cache-aside 读写协议：
1. 读：先查 Redis 的整张映射，未命中则回源数据库、折叠为字典并回填缓存（包括空映射）
2. 写/删：数据库原子 upsert/delete 成功后整体删除该服务的缓存映射，不做原地修补

缓存为尽力而为：读路径上的 Redis 故障记录后直接回源；写后失效失败采用 fail-open，
记录错误并仍报告成功，旧映射最多存活一个 TTL。

已知且接受的竞态（不加锁）：
- 读者在写者 upsert 之前读库、在写者失效之后回填，会写入旧映射，直到下次写入或 TTL 过期
- 服务首次写入时，并发读者可能在写者 upsert 与失效之间回填空映射，最长滞留一个 TTL
"""
import json
import logging
from typing import Dict, List

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import delete, func, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from configlog.core.config import settings
from configlog.core.database import STORE_ERRORS, rollback_quietly
from configlog.core.exceptions import (
    InvalidArgumentError,
    StoreUnavailableError,
    StoreWriteFailedError,
)
from configlog.models.configuration import Configuration

logger = logging.getLogger(__name__)

CONFIG_CACHE_PREFIX = "config:"


def config_cache_key(service_name: str) -> str:
    """配置映射的缓存键：config:{serviceName}"""
    return f"{CONFIG_CACHE_PREFIX}{service_name}"


def _require(value, field: str) -> None:
    if value is None or (isinstance(value, str) and not value):
        raise InvalidArgumentError(f"{field} is required")


def _upsert_statement(dialect_name: str, service_name: str, key: str, value: str):
    """按方言构造单条原子 upsert 语句，避免先查后写的并发插入冲突。"""
    values = {"service_name": service_name, "config_key": key, "config_value": value}
    if dialect_name == "mysql":
        stmt = mysql.insert(Configuration).values(**values)
        return stmt.on_duplicate_key_update(config_value=stmt.inserted.config_value, updated_at=func.now())
    if dialect_name == "postgresql":
        stmt = postgresql.insert(Configuration).values(**values)
    elif dialect_name == "sqlite":
        stmt = sqlite.insert(Configuration).values(**values)
    else:
        raise StoreWriteFailedError(f"Unsupported database dialect: {dialect_name}")
    return stmt.on_conflict_do_update(
        index_elements=["service_name", "config_key"],
        set_={"config_value": stmt.excluded.config_value, "updated_at": func.now()},
    )


class ConfigurationService:
    """
    配置映射协调器

    数据库会话和 Redis 客户端由调用方注入，本类不持有全局连接。
    """

    def __init__(self, db: AsyncSession, cache: Redis, ttl: int | None = None):
        self.db = db
        self.cache = cache
        self.ttl = ttl if ttl is not None else settings.config_cache_ttl

    async def get_configuration(self, service_name: str) -> Dict[str, str]:
        """
        获取某服务的完整配置映射

        命中缓存时不访问数据库；未命中时回源并以固定 TTL 回填。

        Raises:
            InvalidArgumentError: service_name 为空
            StoreUnavailableError: 回源查询失败
        """
        _require(service_name, "serviceName")
        key = config_cache_key(service_name)

        cached = await self._read_cache(key)
        if cached is not None:
            return cached

        try:
            result = await self.db.execute(
                select(Configuration.config_key, Configuration.config_value)
                .where(Configuration.service_name == service_name)
                .order_by(Configuration.id)
            )
            rows = result.all()
        except STORE_ERRORS as e:
            logger.error(f"Failed to load configuration for {service_name}: {e}")
            raise StoreUnavailableError("Configuration store unavailable") from e

        # 重复键时结果集中靠后的行生效
        config: Dict[str, str] = {}
        for config_key, config_value in rows:
            config[config_key] = config_value

        try:
            await self.cache.set(key, json.dumps(config), ex=self.ttl)
        except RedisError as e:
            logger.warning(f"Cache populate failed for {key}, serving from store: {e}")

        return config

    async def set_configuration(self, service_name: str, key: str, value: str) -> None:
        """
        写入（upsert）一个配置项，成功后失效该服务的缓存映射

        Raises:
            InvalidArgumentError: 服务名、key 或 value 缺失
            StoreWriteFailedError: 数据库写入失败（此时不触碰缓存）
        """
        _require(service_name, "serviceName")
        if not key or not value:
            raise InvalidArgumentError("Key and value are required")

        try:
            dialect_name = self.db.get_bind().dialect.name
            await self.db.execute(_upsert_statement(dialect_name, service_name, key, value))
            await self.db.commit()
        except STORE_ERRORS as e:
            await rollback_quietly(self.db)
            logger.error(f"Failed to upsert configuration {service_name}/{key}: {e}")
            raise StoreWriteFailedError("Failed to update configuration") from e

        await self._invalidate(service_name)
        logger.info(f"Configuration updated: {service_name}/{key}")

    async def delete_configuration(self, service_name: str, key: str) -> None:
        """删除一个配置项；键不存在不视为错误，缓存映射同样无条件失效。"""
        _require(service_name, "serviceName")
        _require(key, "key")

        try:
            result = await self.db.execute(
                delete(Configuration).where(
                    Configuration.service_name == service_name,
                    Configuration.config_key == key,
                )
            )
            await self.db.commit()
        except STORE_ERRORS as e:
            await rollback_quietly(self.db)
            logger.error(f"Failed to delete configuration {service_name}/{key}: {e}")
            raise StoreWriteFailedError("Failed to delete configuration") from e

        await self._invalidate(service_name)
        logger.info(f"Configuration deleted: {service_name}/{key} (rows={result.rowcount or 0})")

    async def list_configurations(self) -> List[Configuration]:
        """列出全部配置项，按服务名和键排序；直接查库，不经缓存。"""
        try:
            result = await self.db.execute(
                select(Configuration).order_by(Configuration.service_name, Configuration.config_key)
            )
        except STORE_ERRORS as e:
            logger.error(f"Failed to list configurations: {e}")
            raise StoreUnavailableError("Configuration store unavailable") from e
        return list(result.scalars().all())

    async def _read_cache(self, key: str) -> Dict[str, str] | None:
        """读缓存；Redis 故障或内容无法解码都视为未命中，而不是空映射。"""
        try:
            raw = await self.cache.get(key)
        except RedisError as e:
            logger.warning(f"Cache read failed for {key}, falling back to store: {e}")
            return None
        if raw is None:
            return None
        try:
            decoded = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None
        if not isinstance(decoded, dict):
            logger.warning(f"Discarding non-mapping cache entry {key}")
            return None
        return decoded

    async def _invalidate(self, service_name: str) -> None:
        # fail-open：数据已落库，失效失败只记录错误
        key = config_cache_key(service_name)
        try:
            await self.cache.delete(key)
        except RedisError as e:
            logger.error(f"Cache invalidation failed for {key}; stale map may be served for up to {self.ttl}s: {e}")
