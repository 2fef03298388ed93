"""TaskSyncStore -- 客户端任务集合与三路变更合并

三个变更来源汇聚到同一份集合：
1. 本地乐观操作（拖拽改状态、列内重排）
2. HTTP 调用返回的服务端确认
3. 实时通道推送的任务事件

集合以任务 ID 为键，状态分组是派生视图，因此一个任务至多出现在一个分组里。
合并按 updated_at 做 last-write-wins，与到达顺序无关：
同一快照重复合并是幂等的，HTTP 响应与推送事件谁先到结果都一样。
已删除的 ID 记入墓碑，之后到达的旧快照不会把它复活。
全量 load() 同样走合并，拉取期间到达的推送不会被快照覆盖。
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

import structlog
from zigtask.core.models import (
    STATUS_ORDER,
    Task,
    TaskCreate,
    TaskDeletedEvent,
    TaskEvent,
    TaskFilter,
    TasksByStatus,
    TaskStatus,
    TaskUpdate,
)

from .api_client import TaskApiClient
from .exceptions import ApiError

log = structlog.get_logger()

ChangeListener = Callable[[], None]


class Notifier(Protocol):
    """用户可见反馈（toast 等）"""

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LogNotifier:
    """默认 Notifier -- 只写日志"""

    def success(self, message: str) -> None:
        log.info("notify_success", message=message)

    def error(self, message: str) -> None:
        log.warning("notify_error", message=message)


@dataclass
class _PendingMutation:
    """未确认的乐观变更"""

    # 乐观变更前的服务端快照，用于回滚与 LWW 比较
    prior: Task
    # 当前放在集合里的乐观占位快照
    placeholder: Task


def _server_order_key(task: Task) -> tuple:
    return (task.created_at, task.id)


class TaskSyncStore:
    """客户端任务集合"""

    def __init__(self, api: TaskApiClient, notifier: Notifier | None = None) -> None:
        self._api = api
        self._notifier = notifier or LogNotifier()
        self._tasks: dict[str, Task] = {}
        self._pending: dict[str, _PendingMutation] = {}
        self._tombstones: set[str] = set()
        self._order_override: dict[TaskStatus, list[str]] = {}
        self._filter = TaskFilter()
        self._listeners: list[ChangeListener] = []
        # 每个进行中的 load() 一份：拉取期间被合并或删除的 ID
        self._loads_in_flight: list[set[str]] = []
        # reset() 递增，用于丢弃登出前发起的 load() 结果
        self._generation = 0

    # ---- 读取 ----

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def is_pending(self, task_id: str) -> bool:
        """是否存在未确认的乐观变更"""
        return task_id in self._pending

    @property
    def task_filter(self) -> TaskFilter:
        return self._filter

    def by_status(self) -> TasksByStatus:
        """按状态分组的完整视图（不筛选）"""
        return self._grouped(self._tasks.values())

    def visible_by_status(self) -> TasksByStatus:
        """应用当前筛选条件后的分组视图"""
        return self._grouped(t for t in self._tasks.values() if self._filter.matches(t))

    def visible_tasks(self) -> list[Task]:
        """应用当前筛选条件后的扁平列表，按看板列顺序拼接"""
        return self.visible_by_status().all_tasks()

    # ---- 订阅 ----

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """注册集合变化回调，返回取消函数"""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ---- 服务端数据 ----

    async def load(self) -> None:
        """全量拉取并与本地状态合并（首次加载 / 重连后补偿）

        拉取期间其它来源仍可能改动集合，快照到达时：
        - 快照中的任务逐个按 last-write-wins 合并
        - 快照中没有、且拉取期间未被改动的本地任务视为已在服务端删除
        - 只保留拉取期间记下的墓碑
        """
        generation = self._generation
        touched: set[str] = set()
        self._loads_in_flight.append(touched)
        try:
            grouped = await self._api.get_tasks_by_status()
        finally:
            # 按对象身份移除，并发 load 的集合可能内容相同
            self._loads_in_flight = [s for s in self._loads_in_flight if s is not touched]
        if generation != self._generation:
            log.info("sync_store_load_discarded")
            return

        fetched = {task.id: task for task in grouped.all_tasks()}
        self._tombstones &= touched
        for task_id in list(self._tasks):
            if task_id not in fetched and task_id not in touched:
                del self._tasks[task_id]
                self._pending.pop(task_id, None)
        for task in fetched.values():
            self._accept(task)
        self._order_override.clear()
        log.info("sync_store_loaded", task_count=len(self._tasks), raced=len(touched))
        self._notify_listeners()

    def merge(self, task: Task) -> bool:
        """合并一个服务端快照

        已知 ID 只接受 updated_at 更新的快照；存在乐观变更时与变更前的快照比较。

        Returns:
            True 表示集合发生了变化
        """
        if not self._accept(task):
            return False
        self._mark_touched(task.id)
        self._order_override.clear()
        self._notify_listeners()
        return True

    def remove(self, task_id: str) -> None:
        """无条件移除（Deleted 事件 / 删除确认），并记入墓碑"""
        self._mark_touched(task_id)
        self._tombstones.add(task_id)
        self._pending.pop(task_id, None)
        existed = self._tasks.pop(task_id, None) is not None
        for ordered_ids in self._order_override.values():
            if task_id in ordered_ids:
                ordered_ids.remove(task_id)
        if existed:
            self._notify_listeners()

    def apply_event(self, event: TaskEvent) -> bool:
        """应用实时推送的任务事件"""
        if isinstance(event, TaskDeletedEvent):
            existed = event.task_id in self._tasks
            self.remove(event.task_id)
            return existed
        return self.merge(event.task)

    # ---- 直接 CRUD（服务端优先） ----

    async def create_task(self, data: TaskCreate) -> Task:
        try:
            task = await self._api.create_task(data)
        except ApiError:
            self._notifier.error("Failed to create task")
            raise
        self.merge(task)
        self._notifier.success("Task created successfully!")
        return task

    async def update_task(self, task_id: str, patch: TaskUpdate) -> Task:
        try:
            task = await self._api.update_task(task_id, patch)
        except ApiError:
            self._notifier.error("Failed to update task")
            raise
        self.merge(task)
        self._notifier.success("Task updated successfully!")
        return task

    async def delete_task(self, task_id: str) -> None:
        try:
            await self._api.delete_task(task_id)
        except ApiError:
            self._notifier.error("Failed to delete task")
            raise
        self.remove(task_id)
        self._notifier.success("Task deleted successfully!")

    # ---- 乐观操作 ----

    async def move_task(self, task_id: str, new_status: TaskStatus) -> Task:
        """拖拽改状态：先改本地，再 PATCH；失败则回滚到变更前快照

        Raises:
            KeyError: 本地集合中没有该任务
            ApiError: 服务端调用失败（已回滚并通知）
        """
        current = self._tasks[task_id]
        if current.status == new_status:
            return current

        pending = self._pending.get(task_id)
        prior = pending.prior if pending is not None else current
        placeholder = current.model_copy(update={"status": new_status})
        self._pending[task_id] = _PendingMutation(prior=prior, placeholder=placeholder)
        self._tasks[task_id] = placeholder
        self._notify_listeners()

        try:
            confirmed = await self._api.update_task(task_id, TaskUpdate(status=new_status))
        except ApiError as e:
            self._rollback(task_id, placeholder)
            log.warning(
                "sync_store_move_rolled_back",
                task_id=task_id,
                status=new_status.value,
                error=e.message,
            )
            self._notifier.error("Failed to move task")
            raise

        self.merge(confirmed)
        self._notifier.success(f"Task moved to {new_status.value.replace('_', ' ')}")
        return self._tasks.get(task_id, confirmed)

    def reorder(self, status: TaskStatus, ordered_ids: Iterable[str]) -> None:
        """列内重排 -- 纯本地视觉顺序，不提交服务端

        任何服务端来源的变更（load / 确认 / 推送）都会恢复为服务端顺序。
        """
        self._order_override[status] = [
            task_id
            for task_id in ordered_ids
            if task_id in self._tasks and self._tasks[task_id].status == status
        ]
        self._notify_listeners()

    # ---- 筛选 ----

    def set_filter(self, task_filter: TaskFilter) -> None:
        self._filter = task_filter
        self._notify_listeners()

    def clear_filter(self) -> None:
        self._filter = TaskFilter()
        self._notify_listeners()

    def reset(self) -> None:
        """登出时丢弃全部状态"""
        self._generation += 1
        self._tasks.clear()
        self._pending.clear()
        self._tombstones.clear()
        self._order_override.clear()
        self._filter = TaskFilter()
        self._notify_listeners()

    # ---- 内部 ----

    def _accept(self, task: Task) -> bool:
        """last-write-wins 写入，不触发通知"""
        if task.id in self._tombstones:
            return False

        held = self._tasks.get(task.id)
        if held is not None:
            pending = self._pending.get(task.id)
            baseline = pending.prior if pending is not None else held
            if task.updated_at <= baseline.updated_at:
                return False

        self._tasks[task.id] = task
        # 服务端快照取代乐观占位
        self._pending.pop(task.id, None)
        return True

    def _mark_touched(self, task_id: str) -> None:
        for touched in self._loads_in_flight:
            touched.add(task_id)

    def _rollback(self, task_id: str, placeholder: Task) -> None:
        """仅当乐观占位仍是当前值时恢复变更前快照"""
        pending = self._pending.get(task_id)
        if pending is None or self._tasks.get(task_id) is not placeholder:
            return
        self._tasks[task_id] = pending.prior
        del self._pending[task_id]
        self._notify_listeners()

    def _grouped(self, tasks: Iterable[Task]) -> TasksByStatus:
        ordered = sorted(tasks, key=_server_order_key, reverse=True)
        grouped = TasksByStatus.partition(ordered)
        for status in STATUS_ORDER:
            override = self._order_override.get(status)
            if not override:
                continue
            rank = {task_id: i for i, task_id in enumerate(override)}
            column: list[Task] = getattr(grouped, status.value)
            # 未出现在本地顺序中的任务保持服务端顺序排在后面
            column.sort(key=lambda t: rank.get(t.id, len(rank)))
        return grouped

    def _notify_listeners(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                log.error(
                    "sync_store_listener_failed",
                    error_type=type(e).__name__,
                    error=str(e),
                )
