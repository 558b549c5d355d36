"""
请求/响应模型包

对外 JSON 字段使用 camelCase（与既有客户端保持一致），Python 侧使用 snake_case。
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """按 camelCase 别名序列化和解析，同时接受字段原名。"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
