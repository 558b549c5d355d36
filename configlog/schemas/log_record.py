"""
日志相关请求/响应模型

定义日志写入、批量写入、历史查询、最近日志和统计等 API 的数据结构。
"""
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, ConfigDict, Field

from configlog.schemas import CamelModel


class LogEntryItem(CamelModel):
    """单条日志写入请求体；必填校验在服务层完成，以便返回统一错误码。"""
    service_name: str | None = None
    level: str | None = None
    message: str | None = None
    metadata: Any = None


class LogBulkRequest(CamelModel):
    """批量日志写入请求体。"""
    logs: list[LogEntryItem] | None = None


class LogCreateResponse(CamelModel):
    """单条写入响应体。"""
    message: str
    log_id: int
    timestamp: datetime


class LogBulkResponse(CamelModel):
    """批量写入响应体。"""
    message: str
    count: int
    first_id: int
    timestamp: datetime


class LogRecordResponse(CamelModel):
    """日志记录查询响应体。"""
    id: int
    service_name: str
    level: str
    message: str
    metadata: Any = Field(default=None, validation_alias=AliasChoices("log_metadata", "metadata"))
    timestamp: datetime
    processed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class Pagination(CamelModel):
    """分页信息。"""
    total: int
    limit: int
    offset: int
    has_more: bool


class LogQueryResponse(CamelModel):
    """历史日志查询响应体。"""
    logs: list[LogRecordResponse]
    pagination: Pagination


class RecentLogsResponse(CamelModel):
    """最近日志（缓存）响应体。"""
    service_name: str
    logs: list[dict[str, Any]]
    cached: bool = True
    timestamp: datetime


class ServiceCount(CamelModel):
    """按服务统计的计数项。"""
    service_name: str
    count: int


class LogStatsResponse(CamelModel):
    """日志统计响应体。"""
    time_range: str
    service_name: str
    total: int
    level_stats: dict[str, int]
    service_stats: list[ServiceCount]
    generated_at: datetime
