"""
请求日志中间件 (Request Logging Middleware)

记录每个 HTTP 请求的方法、路径、状态码、耗时和客户端地址。

Logs method, path, status code, elapsed time and client address for every
HTTP request.
"""
import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger("configlog.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """请求访问日志中间件，健康检查请求降为 DEBUG 级别。"""

    async def dispatch(self, request: Request, call_next) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        client = request.client.host if request.client else "-"
        level = logging.DEBUG if request.url.path == "/health" else logging.INFO
        logger.log(
            level,
            "%s %s -> %d (%.1fms) client=%s user_agent=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            client,
            request.headers.get("user-agent", "-"),
        )
        return response
