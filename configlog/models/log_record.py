"""
日志记录模型 (Log Record Model)

定义日志聚合服务的表结构：只追加，ID 由数据库分配且单调递增。
级别字段由数据库枚举约束，协调层在写入前先行校验。

Defines the append-only log table. IDs are assigned by the database and grow
monotonically; the level column is an enum the coordinator validates before
writing.
"""
import enum
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Enum, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from configlog.core.database import Base


class LogLevel(str, enum.Enum):
    """支持的日志级别"""
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"
    TRACE = "trace"


LOG_LEVEL_VALUES = [level.value for level in LogLevel]


class LogRecord(Base):
    """
    日志记录表 (Log Record Table)

    按 (service_name, timestamp) 和 (level, timestamp) 建立复合索引，
    支撑按服务、级别、时间范围的历史查询。

    Composite indexes on (service_name, timestamp) and (level, timestamp)
    serve the filtered history queries.
    """
    __tablename__ = "logs"
    __table_args__ = (
        Index("idx_service_timestamp", "service_name", "timestamp"),
        Index("idx_level_timestamp", "level", "timestamp"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    service_name: Mapped[str] = mapped_column(String(255), nullable=False)  # 服务名称 (Service Name)
    level: Mapped[str] = mapped_column(
        Enum(*LOG_LEVEL_VALUES, name="log_level"),
        nullable=False,
        default=LogLevel.INFO.value,
    )  # 日志级别 (Log Level)
    message: Mapped[str] = mapped_column(Text, nullable=False)  # 日志内容 (Log Message)
    # 属性名避开 DeclarativeBase.metadata，列名仍为 metadata
    log_metadata: Mapped[Any] = mapped_column("metadata", JSON, nullable=True)  # 结构化附加信息 (Structured Metadata)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())  # 日志产生时间 (Creation Time)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )  # 最后处理时间 (Last Touch Time)
