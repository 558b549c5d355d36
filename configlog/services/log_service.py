"""
日志聚合服务 (Log Aggregation Service)

统一管理日志的写入、最近日志缓存和历史查询。

缓存策略：
1. 写入：先写数据库，确认成功后才 LPUSH 快照到 logs:{serviceName}:recent，
   再 LTRIM 到上限并重置 TTL（三条独立命令，非原子）。数据库失败时不触碰缓存，
   缓存中永远不会出现数据库没有的记录。
2. 批量写入：全部校验通过后一次批量插入；提交后按服务分组、按插入顺序更新最近列表。
3. 最近日志：只读缓存，列表不存在返回空，不回源也不回填。
4. 历史查询和统计：始终直接查数据库。
"""
import json
import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from configlog.core.config import settings
from configlog.core.database import STORE_ERRORS, rollback_quietly
from configlog.core.exceptions import (
    BulkLimitExceededError,
    CacheUnavailableError,
    InvalidArgumentError,
    InvalidLogLevelError,
    StoreUnavailableError,
    StoreWriteFailedError,
)
from configlog.models.log_record import LOG_LEVEL_VALUES, LogLevel, LogRecord

logger = logging.getLogger(__name__)

# 统计时间范围 → 回溯时长，未知取值按 1h 处理
STATS_TIME_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


def recent_logs_key(service_name: str) -> str:
    """最近日志列表的缓存键：logs:{serviceName}:recent"""
    return f"logs:{service_name}:recent"


def normalize_level(level: Optional[str]) -> str:
    """校验日志级别，缺省为 info。"""
    if level is None or level == "":
        return LogLevel.INFO.value
    if level not in LOG_LEVEL_VALUES:
        raise InvalidLogLevelError(
            f"Invalid log level: {level}. Must be one of: {', '.join(LOG_LEVEL_VALUES)}"
        )
    return level


def record_snapshot(record: LogRecord) -> Dict[str, Any]:
    """构造写入最近列表的记录快照。"""
    return {
        "id": record.id,
        "level": record.level,
        "message": record.message,
        "metadata": record.log_metadata if record.log_metadata is not None else {},
        "timestamp": record.timestamp.isoformat(),
    }


class LogService:
    """
    日志协调器

    数据库会话和 Redis 客户端由调用方注入；上限、TTL 默认取自全局配置。
    """

    def __init__(
        self,
        db: AsyncSession,
        cache: Redis,
        recent_max: int | None = None,
        recent_ttl: int | None = None,
        bulk_limit: int | None = None,
    ):
        self.db = db
        self.cache = cache
        self.recent_max = recent_max if recent_max is not None else settings.recent_logs_max
        self.recent_ttl = recent_ttl if recent_ttl is not None else settings.recent_logs_ttl
        self.bulk_limit = bulk_limit if bulk_limit is not None else settings.bulk_insert_limit

    async def append_log(
        self,
        service_name: str,
        message: str,
        level: Optional[str] = None,
        metadata: Any = None,
    ) -> int:
        """
        写入单条日志并更新最近日志缓存

        Returns:
            int: 数据库分配的日志 ID

        Raises:
            InvalidArgumentError: serviceName 或 message 缺失
            InvalidLogLevelError: 级别不合法
            StoreWriteFailedError: 数据库写入失败（不会更新缓存）
        """
        if not service_name or not message:
            raise InvalidArgumentError("serviceName and message are required")
        level = normalize_level(level)

        record = self._build_record(service_name, level, message, metadata)
        try:
            self.db.add(record)
            await self.db.commit()
        except STORE_ERRORS as e:
            await rollback_quietly(self.db)
            logger.error(f"Failed to store log entry for {service_name}: {e}")
            raise StoreWriteFailedError("Failed to store log entry") from e

        await self._push_recent(service_name, [record_snapshot(record)])
        logger.info(
            f"Log aggregated: id={record.id} service={service_name} level={level} "
            f"message_length={len(message)}"
        )
        return record.id

    async def append_logs(self, entries: Sequence[Dict[str, Any]]) -> Tuple[int, int]:
        """
        批量写入日志

        先校验全部条目，任一不合法则整批拒绝且不写库；校验通过后一次批量插入。

        Args:
            entries: 每项包含 service_name、message，可选 level、metadata

        Returns:
            Tuple[int, int]: (首条记录 ID, 写入条数)
        """
        if not entries:
            raise InvalidArgumentError("logs array is required and must not be empty")
        if len(entries) > self.bulk_limit:
            raise BulkLimitExceededError(f"Maximum {self.bulk_limit} logs per bulk request")

        prepared = []
        for index, entry in enumerate(entries):
            service_name = entry.get("service_name")
            message = entry.get("message")
            if not service_name or not message:
                raise InvalidArgumentError(
                    "Each log must have serviceName and message", detail=f"logs[{index}]"
                )
            level = normalize_level(entry.get("level"))
            prepared.append((service_name, level, message, entry.get("metadata")))

        records = [self._build_record(*item) for item in prepared]
        try:
            self.db.add_all(records)
            await self.db.commit()
        except STORE_ERRORS as e:
            await rollback_quietly(self.db)
            logger.error(f"Failed to store {len(records)} bulk log entries: {e}")
            raise StoreWriteFailedError("Failed to store bulk log entries") from e

        # 按服务分组，组内保持数据库插入顺序
        by_service: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
        for record in sorted(records, key=lambda r: r.id):
            by_service.setdefault(record.service_name, []).append(record_snapshot(record))
        for service_name, snapshots in by_service.items():
            await self._push_recent(service_name, snapshots)

        first_id = min(r.id for r in records)
        logger.info(f"Bulk logs inserted: count={len(records)} first_id={first_id}")
        return first_id, len(records)

    async def get_recent_logs(self, service_name: str, limit: int | None = None) -> List[Dict[str, Any]]:
        """
        从缓存读取最近日志（最新在前）

        列表不存在或已过期时返回空列表；从不访问数据库。

        Raises:
            CacheUnavailableError: Redis 读取失败
        """
        if not service_name:
            raise InvalidArgumentError("serviceName is required")
        if limit is None:
            limit = settings.default_recent_limit
        if limit < 1:
            raise InvalidArgumentError("limit must be a positive integer")

        key = recent_logs_key(service_name)
        try:
            raw_items = await self.cache.lrange(key, 0, limit - 1)
        except RedisError as e:
            logger.error(f"Error retrieving recent logs for {service_name}: {e}")
            raise CacheUnavailableError("Recent logs cache unavailable") from e

        logs = []
        for raw in raw_items:
            try:
                logs.append(json.loads(raw))
            except (TypeError, ValueError):
                logger.warning(f"Skipping undecodable recent log item in {key}")
        return logs

    async def query_logs(
        self,
        service_name: Optional[str] = None,
        level: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int | None = None,
        offset: int = 0,
        sort_order: str = "desc",
    ) -> Tuple[List[LogRecord], int, bool]:
        """
        按条件分页查询历史日志，始终直接查库

        Returns:
            Tuple[List[LogRecord], int, bool]: (日志列表, 总数, 是否还有更多)
        """
        if limit is None:
            limit = settings.default_query_limit
        if limit < 1:
            raise InvalidArgumentError("limit must be a positive integer")
        if offset < 0:
            raise InvalidArgumentError("offset must not be negative")
        if level:
            normalize_level(level)

        conditions = []
        if service_name:
            conditions.append(LogRecord.service_name == service_name)
        if level:
            conditions.append(LogRecord.level == level)
        if start_time:
            conditions.append(LogRecord.timestamp >= start_time)
        if end_time:
            conditions.append(LogRecord.timestamp <= end_time)

        ascending = (sort_order or "").lower() == "asc"
        ordering = (
            (LogRecord.timestamp.asc(), LogRecord.id.asc())
            if ascending
            else (LogRecord.timestamp.desc(), LogRecord.id.desc())
        )

        stmt = select(LogRecord)
        count_stmt = select(func.count(LogRecord.id))
        for cond in conditions:
            stmt = stmt.where(cond)
            count_stmt = count_stmt.where(cond)
        stmt = stmt.order_by(*ordering).offset(offset).limit(limit)

        try:
            rows = await self.db.execute(stmt)
            records = list(rows.scalars().all())
            total_result = await self.db.execute(count_stmt)
            total = total_result.scalar() or 0
        except STORE_ERRORS as e:
            logger.error(f"Error retrieving logs: {e}")
            raise StoreUnavailableError("Log store unavailable") from e

        return records, total, offset + limit < total

    async def get_stats(self, service_name: Optional[str] = None, time_range: str = "1h") -> Dict[str, Any]:
        """
        统计时间窗口内的日志总数、按级别计数，以及（未指定服务时）日志量前 10 的服务
        """
        if time_range not in STATS_TIME_RANGES:
            time_range = "1h"
        now = datetime.now(timezone.utc)
        conditions = [LogRecord.timestamp >= now - STATS_TIME_RANGES[time_range]]
        if service_name:
            conditions.append(LogRecord.service_name == service_name)

        total_stmt = select(func.count(LogRecord.id)).where(*conditions)
        level_stmt = (
            select(LogRecord.level, func.count(LogRecord.id).label("count"))
            .where(*conditions)
            .group_by(LogRecord.level)
        )

        try:
            total = (await self.db.execute(total_stmt)).scalar() or 0
            level_rows = await self.db.execute(level_stmt)
            level_stats = {level: count for level, count in level_rows.all()}

            service_stats = []
            if not service_name:
                count_col = func.count(LogRecord.id).label("count")
                service_stmt = (
                    select(LogRecord.service_name, count_col)
                    .where(*conditions)
                    .group_by(LogRecord.service_name)
                    .order_by(count_col.desc(), LogRecord.service_name)
                    .limit(10)
                )
                service_rows = await self.db.execute(service_stmt)
                service_stats = [
                    {"service_name": name, "count": count}
                    for name, count in service_rows.all()
                ]
        except STORE_ERRORS as e:
            logger.error(f"Error retrieving statistics: {e}")
            raise StoreUnavailableError("Log store unavailable") from e

        return {
            "time_range": time_range,
            "service_name": service_name or "all",
            "total": total,
            "level_stats": level_stats,
            "service_stats": service_stats,
            "generated_at": now,
        }

    def _build_record(self, service_name: str, level: str, message: str, metadata: Any) -> LogRecord:
        now = datetime.now(timezone.utc)
        return LogRecord(
            service_name=service_name,
            level=level,
            message=message,
            log_metadata=metadata if metadata is not None else {},
            timestamp=now,
            processed_at=now,
        )

    async def _push_recent(self, service_name: str, snapshots: List[Dict[str, Any]]) -> None:
        """按插入顺序推入最近列表头部，裁剪到上限并重置 TTL；失败只记录告警。"""
        key = recent_logs_key(service_name)
        try:
            await self.cache.lpush(key, *[json.dumps(s, default=str) for s in snapshots])
            await self.cache.ltrim(key, 0, self.recent_max - 1)
            await self.cache.expire(key, self.recent_ttl)
        except RedisError as e:
            logger.warning(f"Recent logs cache update failed for {key}: {e}")
