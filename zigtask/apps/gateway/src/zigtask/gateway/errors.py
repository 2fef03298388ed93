"""异常处理器 -- ZigTaskError -> JSON 错误响应

响应体统一为 {"error": {"code": ..., "message": ...}}。
请求体结构校验失败仍由 FastAPI 返回 422。
"""

import structlog
from fastapi import FastAPI, Request
from starlette.responses import JSONResponse
from zigtask.core.exceptions import UnauthorizedError, ZigTaskError

log = structlog.get_logger()


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    """构造统一格式的错误响应"""
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
        headers=headers,
    )


async def zigtask_error_handler(request: Request, exc: ZigTaskError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error(
            "request_failed",
            code=exc.code,
            error=exc.message,
            recoverable=exc.recoverable,
        )
    elif isinstance(exc, UnauthorizedError):
        log.info("request_unauthorized", error=exc.message)
    return error_response(exc.status_code, exc.code, exc.message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ZigTaskError, zigtask_error_handler)
