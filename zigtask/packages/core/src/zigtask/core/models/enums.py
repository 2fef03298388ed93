"""枚举定义

包含任务状态、优先级、任务事件类型，以及事件类型到实时通道事件名的映射。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """任务状态（看板三列）"""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(StrEnum):
    """任务优先级"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskEventType(StrEnum):
    """任务领域事件类型"""

    CREATED = "task.created"
    UPDATED = "task.updated"
    DELETED = "task.deleted"
    STATUS_CHANGED = "task.status_changed"


# 事件类型 -> WebSocket 事件名
WS_EVENT_NAMES: dict[TaskEventType, str] = {
    TaskEventType.CREATED: "taskCreated",
    TaskEventType.UPDATED: "taskUpdated",
    TaskEventType.DELETED: "taskDeleted",
    TaskEventType.STATUS_CHANGED: "taskStatusChanged",
}

# 事件类型 -> payload 中的 action 字段
EVENT_ACTIONS: dict[TaskEventType, str] = {
    TaskEventType.CREATED: "created",
    TaskEventType.UPDATED: "updated",
    TaskEventType.DELETED: "deleted",
    TaskEventType.STATUS_CHANGED: "status_changed",
}

# 看板列顺序
STATUS_ORDER: tuple[TaskStatus, ...] = (
    TaskStatus.TODO,
    TaskStatus.IN_PROGRESS,
    TaskStatus.DONE,
)
