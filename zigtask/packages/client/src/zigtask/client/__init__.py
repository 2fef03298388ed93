"""ZigTask Client -- 无界面的客户端同步层

packages/client 的公开接口导出：HTTP API 客户端、任务集合同步、实时通道客户端。
"""

from .api_client import TaskApiClient
from .config import ClientConfig, load_client_config
from .exceptions import (
    ApiConflictError,
    ApiError,
    ApiNotFoundError,
    ApiUnauthorizedError,
    ApiUnavailableError,
    ApiValidationError,
)
from .realtime import RealtimeClient
from .session import ClientSession
from .sync_store import LogNotifier, Notifier, TaskSyncStore

__all__ = [
    "TaskApiClient",
    "TaskSyncStore",
    "RealtimeClient",
    "ClientSession",
    "Notifier",
    "LogNotifier",
    "ClientConfig",
    "load_client_config",
    "ApiError",
    "ApiValidationError",
    "ApiUnauthorizedError",
    "ApiNotFoundError",
    "ApiConflictError",
    "ApiUnavailableError",
]
