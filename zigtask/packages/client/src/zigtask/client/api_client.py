"""TaskApiClient -- ZigTask HTTP API 封装

基于 httpx.AsyncClient，带有界超时。
非 2xx 响应按状态码映射为 ApiError 子类；连接失败与超时映射为 ApiUnavailableError。
携带 token 的请求收到 401 时回调 on_unauthorized（用于全局强制登出）。
"""

from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog
from zigtask.core.models import (
    Task,
    TaskCreate,
    TaskFilter,
    TasksByStatus,
    TaskUpdate,
    User,
)

from .exceptions import (
    ApiConflictError,
    ApiError,
    ApiNotFoundError,
    ApiUnauthorizedError,
    ApiUnavailableError,
    ApiValidationError,
)

log = structlog.get_logger()

UnauthorizedHook = Callable[[], Awaitable[None]]

_STATUS_ERRORS: dict[int, type[ApiError]] = {
    400: ApiValidationError,
    401: ApiUnauthorizedError,
    404: ApiNotFoundError,
    409: ApiConflictError,
    422: ApiValidationError,
}


def _error_from_response(response: httpx.Response) -> ApiError:
    """将非 2xx 响应转换为 ApiError"""
    code: str | None = None
    message = response.reason_phrase or f"HTTP {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("message") or message
        elif "detail" in body:
            # FastAPI 请求体校验错误
            message = str(body["detail"])

    if response.status_code >= 500:
        return ApiUnavailableError(message, status_code=response.status_code, code=code)
    error_cls = _STATUS_ERRORS.get(response.status_code, ApiError)
    return error_cls(message, status_code=response.status_code, code=code)


class TaskApiClient:
    """ZigTask HTTP API 客户端"""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout_s: float = 10.0,
        token: str | None = None,
        on_unauthorized: UnauthorizedHook | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            base_url: API 基础 URL
            timeout_s: 请求超时（秒）
            token: bearer token
            on_unauthorized: 已登录请求收到 401 时的回调
            transport: 自定义 transport（测试注入 MockTransport / ASGITransport）
        """
        self._base_url = base_url.rstrip("/")
        self.token = token
        self.on_unauthorized = on_unauthorized
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout_s,
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "TaskApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ---- 鉴权 ----

    async def sign_up(
        self,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
    ) -> tuple[User, str]:
        """注册，返回 (user, token)"""
        body = await self._request(
            "POST",
            "/auth/signup",
            json={
                "email": email,
                "password": password,
                "firstName": first_name,
                "lastName": last_name,
            },
            authenticated=False,
        )
        return User.model_validate(body["user"]), body["token"]

    async def sign_in(self, email: str, password: str) -> tuple[User, str]:
        """登录，返回 (user, token)"""
        body = await self._request(
            "POST",
            "/auth/signin",
            json={"email": email, "password": password},
            authenticated=False,
        )
        return User.model_validate(body["user"]), body["token"]

    async def me(self) -> User:
        return User.model_validate(await self._request("GET", "/auth/me"))

    # ---- 任务 ----

    async def create_task(self, data: TaskCreate) -> Task:
        body = await self._request(
            "POST",
            "/tasks",
            json=data.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        return Task.model_validate(body)

    async def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        """按筛选条件查询任务列表"""
        params: dict[str, str] = {}
        if task_filter is not None:
            dumped = task_filter.model_dump(mode="json", by_alias=True, exclude_none=True)
            params = {key: str(value) for key, value in dumped.items() if value != ""}
        body = await self._request("GET", "/tasks", params=params)
        return [Task.model_validate(item) for item in body]

    async def get_tasks_by_status(self) -> TasksByStatus:
        return TasksByStatus.model_validate(await self._request("GET", "/tasks/by-status"))

    async def get_task(self, task_id: str) -> Task:
        return Task.model_validate(await self._request("GET", f"/tasks/{task_id}"))

    async def update_task(self, task_id: str, patch: TaskUpdate) -> Task:
        """部分更新；显式设置为 None 的字段会以 null 发送（清空）"""
        body = await self._request(
            "PATCH",
            f"/tasks/{task_id}",
            json=patch.model_dump(mode="json", by_alias=True, exclude_unset=True),
        )
        return Task.model_validate(body)

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}")

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, str] | None = None,
        authenticated: bool = True,
    ) -> Any:
        headers = {}
        sent_token = authenticated and bool(self.token)
        if sent_token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = await self._http.request(
                method,
                path,
                json=json,
                params=params,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            log.warning("api_request_timeout", method=method, path=path)
            raise ApiUnavailableError(
                f"Request timed out: {method} {path}",
                original_error=e,
            ) from e
        except httpx.TransportError as e:
            log.warning(
                "api_request_failed",
                method=method,
                path=path,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise ApiUnavailableError(
                f"API unreachable: {self._base_url}",
                original_error=e,
            ) from e

        if response.is_success:
            return response.json() if response.content else None

        error = _error_from_response(response)
        log.info(
            "api_request_rejected",
            method=method,
            path=path,
            status_code=response.status_code,
            code=error.code,
        )
        if isinstance(error, ApiUnauthorizedError) and sent_token and self.on_unauthorized:
            await self.on_unauthorized()
        raise error
