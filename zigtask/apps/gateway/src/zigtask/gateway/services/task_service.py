"""TaskService -- 任务增删改查业务逻辑

所有操作都以已认证的所有者 ID 为参数，非本人任务与不存在的任务一律 NotFoundError。
写入成功后向 EventBus 发布任务事件；发布失败只记录日志，不影响请求结果。
Store 异常不做吞并，原样上抛给 HTTP 层。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import structlog
from ulid import ULID
from zigtask.core.config import TASK_TITLE_MAX_LENGTH
from zigtask.core.event_bus import EventBus
from zigtask.core.exceptions import NotFoundError, ValidationError
from zigtask.core.models import (
    Task,
    TaskCreate,
    TaskCreatedEvent,
    TaskDeletedEvent,
    TaskEvent,
    TaskFilter,
    TaskPriority,
    TasksByStatus,
    TaskStatus,
    TaskStatusChangedEvent,
    TaskUpdate,
    TaskUpdatedEvent,
)
from zigtask.core.store import StoreGroup

log = structlog.get_logger()

# 部分更新时不允许显式置空的字段
_NON_NULLABLE_FIELDS = ("title", "status", "priority")


class TaskService:
    """任务业务服务"""

    def __init__(self, store_group: StoreGroup, event_bus: EventBus) -> None:
        self._stores = store_group
        self._event_bus = event_bus
        # task_id -> (lock, 引用计数)，引用归零即移除，避免字典无限增长
        self._task_locks: dict[str, asyncio.Lock] = {}
        self._task_lock_refs: dict[str, int] = {}

    async def create(self, owner_id: str, data: TaskCreate) -> Task:
        """创建任务

        Args:
            owner_id: 所有者用户 ID
            data: 创建请求

        Returns:
            创建后的任务（created_at == updated_at）

        Raises:
            ValidationError: 标题为空或过长
        """
        title = self._validate_title(data.title)
        now = datetime.now(UTC)
        task = Task(
            id=str(ULID()),
            title=title,
            description=data.description,
            status=data.status or TaskStatus.TODO,
            priority=data.priority or TaskPriority.MEDIUM,
            due_date=data.due_date,
            user_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        await self._stores.task_store.insert_task(task)
        log.info("task_created", task_id=task.id, user_id=owner_id)

        self._publish(
            TaskCreatedEvent(task_id=task.id, user_id=owner_id, timestamp=now, task=task)
        )
        return task

    async def list(self, owner_id: str, task_filter: TaskFilter | None = None) -> list[Task]:
        """按筛选条件查询任务，created_at 倒序"""
        return await self._stores.task_store.list_tasks(owner_id, task_filter)

    async def get_grouped_by_status(self, owner_id: str) -> TasksByStatus:
        """按状态分组（不筛选，组内保持 created_at 倒序）"""
        return TasksByStatus.partition(await self.list(owner_id))

    async def get_one(self, task_id: str, owner_id: str) -> Task:
        """查询单个任务

        Raises:
            NotFoundError: 任务不存在或不属于该用户
        """
        task = await self._stores.task_store.get_task(task_id, owner_id)
        if task is None:
            raise NotFoundError(task_id)
        return task

    async def update(self, task_id: str, owner_id: str, patch: TaskUpdate) -> Task:
        """部分更新任务

        只合并请求中出现的字段；description / due_date 显式传 null 表示清空。
        状态发生变化时额外发布 StatusChanged 事件。

        Raises:
            ValidationError: title/status/priority 显式为 null，或标题为空
            NotFoundError: 任务不存在或不属于该用户
        """
        changes = patch.model_dump(exclude_unset=True)
        for field in _NON_NULLABLE_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")
        if "title" in changes:
            changes["title"] = self._validate_title(changes["title"])

        async with self._task_lock(task_id):
            current = await self.get_one(task_id, owner_id)
            updated = current.model_copy(
                update={
                    **changes,
                    "updated_at": self._next_updated_at(current.updated_at),
                }
            )
            # 读取与写入之间任务被删除
            if not await self._stores.task_store.update_task(updated):
                raise NotFoundError(task_id)

            log.info(
                "task_updated",
                task_id=task_id,
                user_id=owner_id,
                fields=sorted(changes),
            )

            # 锁内发布，保证同一任务的事件顺序与写入顺序一致
            self._publish(
                TaskUpdatedEvent(
                    task_id=task_id,
                    user_id=owner_id,
                    timestamp=updated.updated_at,
                    task=updated,
                )
            )
            if updated.status != current.status:
                self._publish(
                    TaskStatusChangedEvent(
                        task_id=task_id,
                        user_id=owner_id,
                        timestamp=updated.updated_at,
                        task=updated,
                        old_status=current.status,
                        new_status=updated.status,
                    )
                )
        return updated

    async def remove(self, task_id: str, owner_id: str) -> None:
        """删除任务

        Raises:
            NotFoundError: 任务不存在或不属于该用户
        """
        async with self._task_lock(task_id):
            if not await self._stores.task_store.delete_task(task_id, owner_id):
                raise NotFoundError(task_id)

            log.info("task_deleted", task_id=task_id, user_id=owner_id)
            self._publish(
                TaskDeletedEvent(
                    task_id=task_id,
                    user_id=owner_id,
                    timestamp=datetime.now(UTC),
                )
            )

    def _publish(self, event: TaskEvent) -> None:
        """尽力发布事件 -- 写入已生效，发布失败不回传给调用方"""
        try:
            self._event_bus.publish(event)
        except Exception as e:
            log.error(
                "task_event_publish_failed",
                task_id=event.task_id,
                event_type=event.type.value,
                error_type=type(e).__name__,
                error=str(e),
            )

    @staticmethod
    def _validate_title(title: str | None) -> str:
        title = (title or "").strip()
        if not title:
            raise ValidationError("title should not be empty")
        if len(title) > TASK_TITLE_MAX_LENGTH:
            raise ValidationError(
                f"title must be shorter than or equal to {TASK_TITLE_MAX_LENGTH} characters"
            )
        return title

    @staticmethod
    def _next_updated_at(previous: datetime) -> datetime:
        """保证 updated_at 严格递增（时钟回拨或同一微秒内多次写入）"""
        return max(datetime.now(UTC), previous + timedelta(microseconds=1))

    @asynccontextmanager
    async def _task_lock(self, task_id: str) -> AsyncIterator[None]:
        """同一任务的读-改-写串行化"""
        lock = self._task_locks.get(task_id)
        if lock is None:
            lock = self._task_locks[task_id] = asyncio.Lock()
        self._task_lock_refs[task_id] = self._task_lock_refs.get(task_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._task_lock_refs[task_id] - 1
            if remaining:
                self._task_lock_refs[task_id] = remaining
            else:
                del self._task_lock_refs[task_id]
                del self._task_locks[task_id]
