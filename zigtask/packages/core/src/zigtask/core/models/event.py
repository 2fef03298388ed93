"""TaskEvent Domain Model -- 任务变更事件（tagged union）

事件只存在于内存中，不落盘；每个在线订阅者最多消费一次。
除 Deleted 外都携带变更后的完整任务快照，StatusChanged 另带新旧状态。

实时通道 payload 形如:
    {"taskId", "userId", "action", "timestamp", "task"?, "oldStatus"?, "newStatus"?}
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from .enums import EVENT_ACTIONS, WS_EVENT_NAMES, TaskEventType, TaskStatus
from .task import Task, UtcDatetime


class _TaskEventBase(BaseModel):
    """事件公共字段"""

    task_id: str = Field(description="任务 ID")
    user_id: str = Field(description="任务所有者 ID")
    timestamp: UtcDatetime = Field(description="事件时间")

    @property
    def ws_event_name(self) -> str:
        return WS_EVENT_NAMES[self.type]

    def to_payload(self) -> dict[str, Any]:
        """转换为实时通道 payload（camelCase，可直接 JSON 序列化）"""
        payload: dict[str, Any] = {
            "taskId": self.task_id,
            "userId": self.user_id,
            "action": EVENT_ACTIONS[self.type],
            "timestamp": self.timestamp.isoformat(),
        }
        task = getattr(self, "task", None)
        if task is not None:
            payload["task"] = task.model_dump(mode="json", by_alias=True)
        return payload


class TaskCreatedEvent(_TaskEventBase):
    type: Literal[TaskEventType.CREATED] = TaskEventType.CREATED
    task: Task


class TaskUpdatedEvent(_TaskEventBase):
    type: Literal[TaskEventType.UPDATED] = TaskEventType.UPDATED
    task: Task


class TaskDeletedEvent(_TaskEventBase):
    type: Literal[TaskEventType.DELETED] = TaskEventType.DELETED


class TaskStatusChangedEvent(_TaskEventBase):
    type: Literal[TaskEventType.STATUS_CHANGED] = TaskEventType.STATUS_CHANGED
    task: Task
    old_status: TaskStatus
    new_status: TaskStatus

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["oldStatus"] = self.old_status.value
        payload["newStatus"] = self.new_status.value
        return payload


TaskEvent = Annotated[
    TaskCreatedEvent | TaskUpdatedEvent | TaskDeletedEvent | TaskStatusChangedEvent,
    Field(discriminator="type"),
]

_TASK_EVENT_ADAPTER: TypeAdapter = TypeAdapter(TaskEvent)

_TYPES_BY_WS_NAME: dict[str, TaskEventType] = {
    name: event_type for event_type, name in WS_EVENT_NAMES.items()
}


def is_task_event_name(name: str) -> bool:
    """是否为任务事件的 WebSocket 事件名"""
    return name in _TYPES_BY_WS_NAME


def parse_ws_event(name: str, payload: dict[str, Any]) -> TaskEvent:
    """将实时通道收到的 (事件名, payload) 还原为 TaskEvent

    Raises:
        ValueError: 未知事件名
        pydantic.ValidationError: payload 结构非法
    """
    event_type = _TYPES_BY_WS_NAME.get(name)
    if event_type is None:
        raise ValueError(f"unknown task event: {name}")
    data: dict[str, Any] = {
        "type": event_type,
        "task_id": payload.get("taskId"),
        "user_id": payload.get("userId"),
        "timestamp": payload.get("timestamp"),
    }
    if "task" in payload:
        data["task"] = payload["task"]
    if "oldStatus" in payload:
        data["old_status"] = payload["oldStatus"]
    if "newStatus" in payload:
        data["new_status"] = payload["newStatus"]
    return _TASK_EVENT_ADAPTER.validate_python(data)
