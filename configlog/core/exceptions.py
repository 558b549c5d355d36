"""
全局异常处理模块 (Global Exception Handling Module)

定义业务异常类和 FastAPI 全局异常处理器，提供统一的错误响应格式。
每类失败都对应稳定的机器可读错误码，对外不暴露堆栈或表结构细节。

Defines business exception classes and FastAPI global exception handlers,
providing a unified error response format. Every failure maps to a stable
machine-readable code; stack traces and schema details never leave the process.
"""
import logging
import traceback
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# ============================================================
# 业务异常类 (Business Exception Classes)
# ============================================================

class BusinessError(Exception):
    """业务异常基类 (Base Business Exception)"""
    status_code: int = 400
    error: str = "business_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class InvalidArgumentError(BusinessError):
    """缺少或格式错误的输入，在任何 I/O 之前检出 (Missing/malformed input, caught before I/O)"""
    status_code = 400
    error = "invalid_argument"


class InvalidLogLevelError(BusinessError):
    """日志级别不在枚举范围内 (Log level outside the enumerated set)"""
    status_code = 400
    error = "invalid_log_level"


class BulkLimitExceededError(BusinessError):
    """批量写入条数超过上限 (Batch too large)"""
    status_code = 400
    error = "bulk_limit_exceeded"


class StoreUnavailableError(BusinessError):
    """持久化存储读取失败 (Store read failure)"""
    status_code = 503
    error = "store_unavailable"


class StoreWriteFailedError(BusinessError):
    """持久化存储写入失败 (Store write failure)"""
    status_code = 500
    error = "store_write_failed"


class CacheUnavailableError(BusinessError):
    """缓存不可用且当前路径没有回源 (Cache failure on a path with no store fallback)"""
    status_code = 503
    error = "cache_unavailable"


# ============================================================
# 全局异常处理器注册 (Global Exception Handler Registration)
# ============================================================

def _error_body(error: str, message: str, detail, status_code: int) -> dict:
    return {
        "error": error,
        "message": message,
        "detail": detail,
        "status_code": status_code,
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    注册全局异常处理器到 FastAPI 应用 (Register global exception handlers to FastAPI app)

    处理优先级：
    1. BusinessError 子类 → 对应 HTTP 状态码 + 结构化响应
    2. RequestValidationError → 400 invalid_argument
    3. HTTPException（含未匹配路由的 404）→ 保持状态码，包装为统一格式
    4. Exception → 500 + 完整 traceback 日志
    """

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error, exc.message, exc.detail, exc.status_code),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
        return JSONResponse(
            status_code=400,
            content=_error_body(
                InvalidArgumentError.error,
                "Request validation failed",
                ", ".join(fields) or None,
                400,
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        error = "not_found" if exc.status_code == 404 else "http_error"
        if exc.status_code == 404:
            logger.warning(f"Route not found: {request.method} {request.url.path}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(error, str(exc.detail), None, exc.status_code),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        # 记录完整 traceback 用于调试 (Log full traceback for debugging)
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.url.path,
            str(exc),
            traceback.format_exc(),
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "服务器内部错误，请稍后重试 (Internal server error, please try again later)",
                None,
                500,
            ),
        )
