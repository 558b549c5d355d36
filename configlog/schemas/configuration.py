"""
配置相关请求/响应模型
"""
from datetime import datetime

from pydantic import ConfigDict, field_validator

from configlog.schemas import CamelModel


class ConfigSetRequest(CamelModel):
    """写入配置项请求体；字段缺失由服务层统一报 invalid_argument。"""
    key: str | None = None
    value: str | None = None

    @field_validator("key", "value", mode="before")
    @classmethod
    def numbers_as_text(cls, v):
        # 数值按文本存储；布尔、对象和数组仍视为格式错误
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class MessageResponse(CamelModel):
    """通用操作结果响应体。"""
    message: str


class ConfigurationResponse(CamelModel):
    """配置项查询响应体。"""
    id: int
    service_name: str
    config_key: str
    config_value: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
