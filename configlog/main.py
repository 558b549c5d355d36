"""
configlog 应用入口模块 (Application Entry Module)

负责 FastAPI 应用的生命周期管理：启动时建表、初始化 Redis 客户端，
关闭时释放 Redis 连接和数据库连接池；注册异常处理器、中间件和路由。

Application entry point, responsible for the FastAPI lifecycle: creates tables
and the Redis client at startup, releases the Redis connection and database
pool at shutdown, and wires exception handlers, middleware and routers.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from configlog import __version__
from configlog.core.config import settings as app_settings
from configlog.core.database import Base, engine
from configlog.core.exceptions import register_exception_handlers
from configlog.core.redis import close_redis, get_redis, init_redis
from configlog.core.request_logging import RequestLoggingMiddleware
# 导入所有模型以确保 SQLAlchemy 表注册 (Import all models to ensure table registration)
from configlog.models import Configuration, LogRecord  # noqa: F401
from configlog.routers import config, logs

logging.basicConfig(
    level=app_settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器 (Application Lifecycle Manager)

    启动：建表、创建并探测 Redis 客户端；关闭：释放 Redis 与连接池。
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await init_redis()
    logger.info(f"{app_settings.app_name} started ({app_settings.environment})")

    yield

    logger.info("Shutting down, releasing connections")
    await close_redis()
    await engine.dispose()


# 创建 FastAPI 应用实例 (Create FastAPI application instance)
app = FastAPI(
    title="configlog",
    description="Configuration store and log aggregator with Redis cache-aside",
    version=__version__,
    lifespan=lifespan,
)

# 注册全局异常处理器 (Register global exception handlers)
register_exception_handlers(app)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(config.router)  # 配置中心 (Configuration store)
app.include_router(logs.router)  # 日志聚合 (Log aggregation)


@app.get("/health")
async def health():
    """
    健康检查接口 (Health Check Endpoint)

    报告进程存活，并附带数据库和 Redis 的连通性检查结果。
    """
    checks = {"api": "ok"}

    # 数据库连通性检查 (Database connectivity check)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        logger.exception("Database health check failed")
        checks["database"] = "error"

    # Redis 连通性检查 (Redis connectivity check)
    try:
        r = await get_redis()
        await r.ping()
        checks["redis"] = "ok"
    except Exception:
        logger.exception("Redis health check failed")
        checks["redis"] = "error"

    status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"

    return {
        "status": status,
        "service": app_settings.app_name,
        "checks": checks,
        "uptime": round(time.monotonic() - _started_at, 3),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def run() -> None:
    """命令行入口：以 uvicorn 启动服务 (Console entry point, serves the app with uvicorn)"""
    uvicorn.run(
        "configlog.main:app",
        host=app_settings.host,
        port=app_settings.port,
        log_level=app_settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
