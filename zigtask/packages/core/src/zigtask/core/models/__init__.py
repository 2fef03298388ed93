"""ZigTask Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    EVENT_ACTIONS,
    STATUS_ORDER,
    WS_EVENT_NAMES,
    TaskEventType,
    TaskPriority,
    TaskStatus,
)
from .event import (
    TaskCreatedEvent,
    TaskDeletedEvent,
    TaskEvent,
    TaskStatusChangedEvent,
    TaskUpdatedEvent,
    is_task_event_name,
    parse_ws_event,
)
from .task import (
    ApiModel,
    Task,
    TaskCreate,
    TaskFilter,
    TasksByStatus,
    TaskUpdate,
    ensure_utc,
)
from .user import StoredUser, User

__all__ = [
    # 枚举
    "TaskStatus",
    "TaskPriority",
    "TaskEventType",
    "STATUS_ORDER",
    "WS_EVENT_NAMES",
    "EVENT_ACTIONS",
    # Task
    "ApiModel",
    "Task",
    "TaskCreate",
    "TaskUpdate",
    "TaskFilter",
    "TasksByStatus",
    "ensure_utc",
    # User
    "User",
    "StoredUser",
    # Event
    "TaskEvent",
    "TaskCreatedEvent",
    "TaskUpdatedEvent",
    "TaskDeletedEvent",
    "TaskStatusChangedEvent",
    "is_task_event_name",
    "parse_ws_event",
]
