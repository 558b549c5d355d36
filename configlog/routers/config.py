"""
配置中心路由 (Configuration Store Router)

功能说明：按服务名读写键值配置，读路径走 Redis 缓存，写路径落库后失效缓存
API端点：
  - GET    /config                      列出全部配置项（直接查库）
  - GET    /config/{serviceName}        获取某服务的完整配置映射
  - POST   /config/{serviceName}        写入（upsert）一个配置项
  - DELETE /config/{serviceName}/{key}  删除一个配置项
"""
from fastapi import APIRouter, Depends

from configlog.core.deps import get_configuration_service
from configlog.schemas.configuration import ConfigSetRequest, ConfigurationResponse, MessageResponse
from configlog.services.config_service import ConfigurationService

router = APIRouter(prefix="/config", tags=["config"])


@router.get("", response_model=list[ConfigurationResponse])
async def list_configurations(
    service: ConfigurationService = Depends(get_configuration_service),
):
    """列出所有服务的全部配置项，按服务名和键排序。"""
    rows = await service.list_configurations()
    return [ConfigurationResponse.model_validate(row) for row in rows]


@router.get("/{service_name}", response_model=dict[str, str])
async def get_configuration(
    service_name: str,
    service: ConfigurationService = Depends(get_configuration_service),
):
    """获取某服务的配置映射 {key: value}，优先命中缓存。"""
    return await service.get_configuration(service_name)


@router.post("/{service_name}", response_model=MessageResponse)
async def set_configuration(
    service_name: str,
    body: ConfigSetRequest,
    service: ConfigurationService = Depends(get_configuration_service),
):
    """写入配置项；已存在则覆盖值。"""
    await service.set_configuration(service_name, body.key, body.value)
    return MessageResponse(message="Configuration updated successfully")


@router.delete("/{service_name}/{key}", response_model=MessageResponse)
async def delete_configuration(
    service_name: str,
    key: str,
    service: ConfigurationService = Depends(get_configuration_service),
):
    """删除配置项；键不存在同样返回成功。"""
    await service.delete_configuration(service_name, key)
    return MessageResponse(message="Configuration deleted successfully")
