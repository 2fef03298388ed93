"""Task Domain Model

对外 JSON 使用 camelCase（dueDate / userId / createdAt），
入参同时接受 camelCase 与 snake_case。
时间统一为 UTC aware datetime，无时区的输入按 UTC 处理。
"""

from datetime import UTC, datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import TaskPriority, TaskStatus


def ensure_utc(value: datetime) -> datetime:
    """无时区视为 UTC，有时区统一换算到 UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


class ApiModel(BaseModel):
    """对外模型基类 -- camelCase 别名"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Task(ApiModel):
    """Task 数据模型

    user_id 为任务所有者，创建后不可变更。
    updated_at 每次成功修改严格递增，客户端以此做 last-write-wins 合并。
    """

    id: str = Field(description="唯一标识，ULID 格式")
    title: str = Field(description="任务标题")
    description: str | None = Field(default=None, description="任务描述")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="看板状态")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="优先级")
    due_date: UtcDatetime | None = Field(default=None, description="截止时间")
    user_id: str = Field(description="所有者用户 ID")
    created_at: UtcDatetime = Field(description="创建时间")
    updated_at: UtcDatetime = Field(description="最后修改时间")


class TaskCreate(ApiModel):
    """创建任务请求体

    title 的非空校验在 TaskService 中完成，统一抛出 ValidationError。
    """

    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: UtcDatetime | None = None


class TaskUpdate(ApiModel):
    """部分更新请求体 -- 未提供的字段保持不变"""

    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: UtcDatetime | None = None


class TaskFilter(ApiModel):
    """任务列表筛选条件，各条件之间为 AND 关系"""

    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    search: str | None = Field(default=None, description="标题或描述的子串，大小写不敏感")
    date_from: UtcDatetime | None = Field(default=None, description="created_at 下界（含）")
    date_to: UtcDatetime | None = Field(default=None, description="created_at 上界（含）")

    def is_empty(self) -> bool:
        """没有任何筛选条件"""
        return (
            self.status is None
            and self.priority is None
            and not self.search
            and self.date_from is None
            and self.date_to is None
        )

    def matches_text(self, task: Task) -> bool:
        """search 条件判断（casefold，兼容非 ASCII 文本）"""
        if not self.search:
            return True
        needle = self.search.casefold()
        return needle in task.title.casefold() or needle in (task.description or "").casefold()

    def matches(self, task: Task) -> bool:
        """全部条件的内存判断（与服务端查询语义一致）"""
        if self.status is not None and task.status != self.status:
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        if self.date_from is not None and task.created_at < self.date_from:
            return False
        if self.date_to is not None and task.created_at > self.date_to:
            return False
        return self.matches_text(task)


class TasksByStatus(BaseModel):
    """按状态分组视图 -- 键名与状态值一致（todo / in_progress / done）"""

    todo: list[Task] = Field(default_factory=list)
    in_progress: list[Task] = Field(default_factory=list)
    done: list[Task] = Field(default_factory=list)

    @classmethod
    def partition(cls, tasks: list[Task]) -> "TasksByStatus":
        """按状态拆分，保持输入顺序"""
        grouped = cls()
        for task in tasks:
            getattr(grouped, task.status.value).append(task)
        return grouped

    def all_tasks(self) -> list[Task]:
        return [*self.todo, *self.in_progress, *self.done]
