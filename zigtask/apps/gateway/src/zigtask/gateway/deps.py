"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例

服务实例通过 app.state 管理，在 lifespan 中初始化/清理。
使用 HTTPConnection 使同一组依赖可同时用于 HTTP 路由与 WebSocket 路由。
"""

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection, Request
from zigtask.core.event_bus import EventBus
from zigtask.core.exceptions import UnauthorizedError
from zigtask.core.models import User
from zigtask.core.store import StoreGroup

from .services.auth_service import AuthService
from .services.realtime_gateway import RealtimeGateway
from .services.task_service import TaskService

# auto_error=False：缺失 token 时由 get_current_user 统一返回 401 错误体
_bearer = HTTPBearer(auto_error=False)


def get_store_group(connection: HTTPConnection) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return connection.app.state.store_group


def get_event_bus(connection: HTTPConnection) -> EventBus:
    """从 app.state 获取 EventBus 实例"""
    return connection.app.state.event_bus


def get_task_service(connection: HTTPConnection) -> TaskService:
    """从 app.state 获取 TaskService 实例"""
    return connection.app.state.task_service


def get_auth_service(connection: HTTPConnection) -> AuthService:
    """从 app.state 获取 AuthService 实例"""
    return connection.app.state.auth_service


def get_realtime_gateway(connection: HTTPConnection) -> RealtimeGateway:
    """从 app.state 获取 RealtimeGateway 实例"""
    return connection.app.state.realtime_gateway


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """解析 Authorization: Bearer <token>，返回当前用户

    鉴权成功后 user_id 写入 request.state（供请求日志使用）并绑定到 structlog 上下文。

    Raises:
        UnauthorizedError: 缺少、无效或过期的 token
    """
    if credentials is None:
        raise UnauthorizedError("Missing bearer token")
    user = await auth_service.authenticate(credentials.credentials)
    request.state.user_id = user.id
    structlog.contextvars.bind_contextvars(user_id=user.id)
    return user
