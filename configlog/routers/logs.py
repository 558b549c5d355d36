"""日志聚合路由模块。

提供单条/批量写入、历史查询与分页、最近日志（缓存）和统计接口。
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query

from configlog.core.config import settings
from configlog.core.deps import get_log_service
from configlog.schemas.log_record import (
    LogBulkRequest,
    LogBulkResponse,
    LogCreateResponse,
    LogEntryItem,
    LogQueryResponse,
    LogRecordResponse,
    LogStatsResponse,
    Pagination,
    RecentLogsResponse,
)
from configlog.services.log_service import LogService

router = APIRouter(tags=["logs"])


# ── 日志写入 ─────────────────────────────────────────────────────────
@router.post("/logs", response_model=LogCreateResponse, status_code=201)
async def create_log(
    body: LogEntryItem,
    service: LogService = Depends(get_log_service),
):
    """写入单条日志，成功后推入该服务的最近日志缓存。"""
    log_id = await service.append_log(body.service_name, body.message, body.level, body.metadata)
    return LogCreateResponse(
        message="Log entry stored successfully",
        log_id=log_id,
        timestamp=datetime.now(timezone.utc),
    )


@router.post("/logs/bulk", response_model=LogBulkResponse, status_code=201)
async def create_logs_bulk(
    body: LogBulkRequest,
    service: LogService = Depends(get_log_service),
):
    """批量写入日志，全部校验通过才落库。"""
    entries = [item.model_dump() for item in body.logs or []]
    first_id, count = await service.append_logs(entries)
    return LogBulkResponse(
        message="Bulk logs stored successfully",
        count=count,
        first_id=first_id,
        timestamp=datetime.now(timezone.utc),
    )


# ── 历史查询 ─────────────────────────────────────────────────────────
@router.get("/logs", response_model=LogQueryResponse)
async def query_logs(
    service_name: str | None = Query(None, alias="serviceName"),
    level: str | None = Query(None),
    start_time: datetime | None = Query(None, alias="startTime"),
    end_time: datetime | None = Query(None, alias="endTime"),
    limit: int = Query(settings.default_query_limit, ge=1),
    offset: int = Query(0, ge=0),
    sort_order: str = Query("DESC", alias="sortOrder", description="ASC or DESC"),
    service: LogService = Depends(get_log_service),
):
    """按服务、级别、时间范围筛选历史日志，按时间排序分页返回。"""
    records, total, has_more = await service.query_logs(
        service_name=service_name,
        level=level,
        start_time=start_time,
        end_time=end_time,
        limit=limit,
        offset=offset,
        sort_order=sort_order,
    )
    return LogQueryResponse(
        logs=[LogRecordResponse.model_validate(r) for r in records],
        pagination=Pagination(total=total, limit=limit, offset=offset, has_more=has_more),
    )


# ── 最近日志（仅缓存） ────────────────────────────────────────────────
@router.get("/logs/{service_name}/recent", response_model=RecentLogsResponse)
async def recent_logs(
    service_name: str,
    limit: int = Query(settings.default_recent_limit, ge=1),
    service: LogService = Depends(get_log_service),
):
    """从缓存读取某服务最近的日志，最新在前；缓存缺失时返回空列表。"""
    logs = await service.get_recent_logs(service_name, limit)
    return RecentLogsResponse(
        service_name=service_name,
        logs=logs,
        cached=True,
        timestamp=datetime.now(timezone.utc),
    )


# ── 统计 ─────────────────────────────────────────────────────────────
@router.get("/stats", response_model=LogStatsResponse)
async def log_stats(
    service_name: str | None = Query(None, alias="serviceName"),
    time_range: str = Query("1h", alias="timeRange", description="1h, 24h, 7d or 30d"),
    service: LogService = Depends(get_log_service),
):
    """按时间窗口统计日志总数、级别分布和日志量前 10 的服务。"""
    stats = await service.get_stats(service_name=service_name, time_range=time_range)
    return LogStatsResponse(**stats)
