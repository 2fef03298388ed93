"""TraceMiddleware -- 任务级追踪

对 /tasks/{task_id} 请求绑定 trace_id=trace-{task_id}，
同一任务的读写日志可按 trace_id 串联。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ULID 字符串长度
_ULID_LENGTH = 26


def extract_task_id(path: str) -> str | None:
    """从 /tasks/{task_id} 路径中提取 task_id（排除 /tasks/by-status 等子路由）"""
    parts = path.strip("/").split("/")
    for i, part in enumerate(parts[:-1]):
        if part == "tasks":
            candidate = parts[i + 1]
            if len(candidate) == _ULID_LENGTH and candidate.isalnum():
                return candidate
    return None


class TraceMiddleware(BaseHTTPMiddleware):
    """任务级追踪中间件 -- 为任务操作绑定 trace_id"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        task_id = extract_task_id(request.url.path)
        if task_id:
            structlog.contextvars.bind_contextvars(trace_id=f"trace-{task_id}")

        return await call_next(request)
