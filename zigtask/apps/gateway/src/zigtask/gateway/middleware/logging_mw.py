"""LoggingMiddleware -- 请求级日志

每个 HTTP 请求：
- 绑定 request_id 到 structlog contextvars 并在 X-Request-ID 响应头回传；
  客户端自带合法 ULID 时沿用，便于把客户端日志与服务端日志对上
- 结束时写一条 http_request：路由模板、状态码、耗时、已鉴权用户

user_id 由 get_current_user 写入 request.state，未鉴权请求不带该字段。
WebSocket 连接不经过该中间件，由 RealtimeGateway 自行记录连接级日志。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Scope
from ulid import ULID

REQUEST_ID_HEADER = "X-Request-ID"

# 探活请求频繁，降为 debug
_HEALTH_CHECK_PATHS = frozenset({"/health", "/ready"})


def resolve_request_id(header_value: str | None) -> str:
    """沿用合法的 ULID 请求头，否则生成新的"""
    if not header_value:
        return str(ULID())
    try:
        return str(ULID.from_str(header_value))
    except ValueError:
        return str(ULID())


def route_template(scope: Scope) -> str:
    """匹配到的路由模板（如 /tasks/{task_id}），未匹配时返回原始路径"""
    route = scope.get("route")
    return getattr(route, "path", None) or scope.get("path", "")


def request_log_level(path: str, status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code >= 400:
        return "warning"
    if path in _HEALTH_CHECK_PATHS:
        return "debug"
    return "info"


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        log = structlog.get_logger()
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            await log.aerror(
                "http_request_failed",
                route=route_template(request.scope),
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

        level = request_log_level(request.url.path, response.status_code)
        await getattr(log, f"a{level}")(
            "http_request",
            route=route_template(request.scope),
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
            user_id=getattr(request.state, "user_id", None),
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
