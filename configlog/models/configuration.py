"""
配置项模型

以 (service_name, config_key) 为唯一键存储各服务的键值配置，数据库是唯一权威来源。
"""
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from configlog.core.database import Base


class Configuration(Base):
    """配置项表，每行是某个服务的一个键值对；写入采用 upsert 语义。"""
    __tablename__ = "configurations"
    __table_args__ = (
        UniqueConstraint("service_name", "config_key", name="unique_service_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    service_name: Mapped[str] = mapped_column(String(255), nullable=False)
    config_key: Mapped[str] = mapped_column(String(255), nullable=False)
    config_value: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
