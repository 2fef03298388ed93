"""Store Protocol 接口定义

定义 TaskStore、UserStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from typing import Protocol

from ..models.task import Task, TaskFilter
from ..models.user import StoredUser


class TaskStore(Protocol):
    """Task 存储接口 -- 所有操作按所有者隔离"""

    async def insert_task(self, task: Task) -> None:
        """插入任务记录"""
        ...

    async def get_task(self, task_id: str, owner_id: str) -> Task | None:
        """按 id + 所有者查询任务"""
        ...

    async def list_tasks(
        self,
        owner_id: str,
        task_filter: TaskFilter | None = None,
    ) -> list[Task]:
        """按筛选条件查询所有者的任务，created_at 倒序"""
        ...

    async def update_task(self, task: Task) -> bool:
        """整行原子更新，返回是否命中"""
        ...

    async def delete_task(self, task_id: str, owner_id: str) -> bool:
        """删除任务，返回是否命中"""
        ...


class UserStore(Protocol):
    """User 存储接口"""

    async def create_user(self, user: StoredUser) -> None:
        """创建用户（邮箱冲突抛出 ConflictError）"""
        ...

    async def get_user(self, user_id: str) -> StoredUser | None:
        """根据 id 查询用户"""
        ...

    async def get_user_by_email(self, email: str) -> StoredUser | None:
        """根据邮箱查询用户"""
        ...
