"""
应用配置模块 (Application Configuration Module)

使用 Pydantic Settings 管理配置中心和日志聚合服务的所有配置项，支持从 .env 文件和环境变量读取。
涵盖数据库连接、Redis 缓存、缓存 TTL、批量写入上限和超时等配置。

Uses Pydantic Settings to manage every configuration item of the configuration
and log aggregation services, read from a .env file and environment variables.
Covers database connection, Redis cache, cache TTLs, bulk limits and timeouts.
"""
import logging

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    应用全局配置类 (Application Global Configuration Class)

    字段名自动映射同名环境变量（不区分大小写），支持 .env 文件加载。

    Field names map to same-named environment variables (case insensitive),
    with .env file loading.
    """

    app_name: str = "configlog"  # 服务名称 (Service Name)
    environment: str = "development"  # 运行环境：development/production (Runtime Environment)
    log_level: str = "INFO"  # 日志级别 (Logging Level)
    host: str = "0.0.0.0"  # HTTP 监听地址 (Listen Host)
    port: int = 8000  # HTTP 监听端口 (Listen Port)

    # 数据库配置 (Database Configuration)
    postgres_host: str = "localhost"  # PostgreSQL 主机地址 (PostgreSQL Host)
    postgres_port: int = 5432  # PostgreSQL 端口号 (PostgreSQL Port)
    postgres_db: str = "configlog"  # 数据库名称 (Database Name)
    postgres_user: str = "configlog"  # 数据库用户名 (Database Username)
    postgres_password: str = "configlog_dev_password"  # 数据库密码 (Database Password)
    database_url_override: str = ""  # 完整连接 URL，非空时优先使用 (Full URL, wins when set)
    db_pool_timeout: float = 10.0  # 连接池获取超时（秒） (Pool Checkout Timeout)
    db_command_timeout: float = 10.0  # 单条语句超时（秒，仅 asyncpg） (Statement Timeout, asyncpg only)

    # Redis 配置 (Redis Configuration)
    redis_host: str = "localhost"  # Redis 主机地址 (Redis Host)
    redis_port: int = 6379  # Redis 端口号 (Redis Port)
    redis_db: int = 0  # Redis 库编号 (Redis Database Index)
    redis_socket_timeout: float = 5.0  # 读写超时（秒） (Socket Timeout)
    redis_connect_timeout: float = 5.0  # 连接超时（秒） (Connect Timeout)

    # 缓存策略配置 (Cache Policy Configuration)
    config_cache_ttl: int = 300  # 配置映射缓存 5 分钟 (Config Map TTL Seconds)
    recent_logs_ttl: int = 3600  # 最近日志列表缓存 1 小时 (Recent Logs TTL Seconds)
    recent_logs_max: int = 1000  # 每个服务最多缓存的最近日志条数 (Recent Logs Cap)
    bulk_insert_limit: int = 1000  # 单次批量写入上限 (Max Records per Bulk Call)
    default_recent_limit: int = 50  # 最近日志默认返回条数 (Default Recent Limit)
    default_query_limit: int = 100  # 历史日志查询默认分页大小 (Default Query Page Size)

    @property
    def database_url(self) -> str:
        """
        构造异步数据库连接 URL (Build Async Database Connection URL)

        优先使用 DATABASE_URL_OVERRIDE，否则拼接 asyncpg 驱动的 PostgreSQL 连接串。

        Uses DATABASE_URL_OVERRIDE when set, otherwise builds a PostgreSQL URL
        for the asyncpg driver.
        """
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def redis_url(self) -> str:
        """构造 Redis 连接 URL (Build Redis Connection URL)"""
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}  # 自动加载 .env 文件 (Auto-load .env file)


# 全局配置实例 (Global Configuration Instance)
settings = Settings()

if settings.environment == "production" and not settings.database_url_override and settings.postgres_password == "configlog_dev_password":
    logger.warning(
        "POSTGRES_PASSWORD 仍为开发默认值，生产环境请设置环境变量！"
        " | POSTGRES_PASSWORD is still the development default. "
        "Set it through the environment in production!"
    )
