"""
数据模型包 (Data Models Package)

集中导出所有 SQLAlchemy ORM 模型：配置项和日志记录。

Centrally exports the SQLAlchemy ORM models: configuration entries and log records.
"""
from configlog.models.configuration import Configuration
from configlog.models.log_record import LogLevel, LogRecord

# 导出所有模型类供外部模块使用 (Export all model classes for external modules)
__all__ = ["Configuration", "LogLevel", "LogRecord"]
