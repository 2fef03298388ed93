"""TaskStore SQLite 实现

所有读写都带 user_id 条件，保证按所有者隔离。
写操作成功即提交、失败即回滚；SQLite OperationalError（锁超时、库不可用）
转换为 StoreUnavailableError 向上抛出，其余异常原样抛出。
"""

from collections.abc import Sequence
from typing import Any

import aiosqlite

from ..exceptions import StoreUnavailableError
from ..models.task import Task, TaskFilter
from .sqlite_init import format_ts, parse_ts

_COLUMNS = (
    "id, user_id, title, description, status, priority, due_date, created_at, updated_at"
)


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert_task(self, task: Task) -> None:
        """插入任务记录"""
        await self._write(
            "insert_task",
            f"""
            INSERT INTO tasks ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.id,
                task.user_id,
                task.title,
                task.description,
                task.status.value,
                task.priority.value,
                format_ts(task.due_date) if task.due_date else None,
                format_ts(task.created_at),
                format_ts(task.updated_at),
            ),
        )

    async def get_task(self, task_id: str, owner_id: str) -> Task | None:
        """按 id + 所有者查询任务"""
        rows = await self._read(
            "get_task",
            f"SELECT {_COLUMNS} FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, owner_id),
        )
        if not rows:
            return None
        return self._row_to_task(rows[0])

    async def list_tasks(
        self,
        owner_id: str,
        task_filter: TaskFilter | None = None,
    ) -> list[Task]:
        """查询所有者的任务列表，按 created_at 倒序

        等值与时间范围条件下推到 SQL；文本搜索在内存中以 casefold 比较，
        避免 SQLite LIKE/LOWER 只处理 ASCII 的问题。
        """
        task_filter = task_filter or TaskFilter()
        clauses = ["user_id = ?"]
        params: list[Any] = [owner_id]

        if task_filter.status is not None:
            clauses.append("status = ?")
            params.append(task_filter.status.value)
        if task_filter.priority is not None:
            clauses.append("priority = ?")
            params.append(task_filter.priority.value)
        if task_filter.date_from is not None:
            clauses.append("created_at >= ?")
            params.append(format_ts(task_filter.date_from))
        if task_filter.date_to is not None:
            clauses.append("created_at <= ?")
            params.append(format_ts(task_filter.date_to))

        rows = await self._read(
            "list_tasks",
            f"SELECT {_COLUMNS} FROM tasks WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at DESC, id DESC",
            tuple(params),
        )
        tasks = [self._row_to_task(row) for row in rows]
        if task_filter.search:
            tasks = [t for t in tasks if task_filter.matches_text(t)]
        return tasks

    async def update_task(self, task: Task) -> bool:
        """整行更新（单条 UPDATE 语句，按 id + 所有者定位）

        Returns:
            False 表示没有匹配的行（任务已被删除或不属于该用户）
        """
        rowcount = await self._write(
            "update_task",
            """
            UPDATE tasks
            SET title = ?, description = ?, status = ?, priority = ?,
                due_date = ?, updated_at = ?
            WHERE id = ? AND user_id = ?
            """,
            (
                task.title,
                task.description,
                task.status.value,
                task.priority.value,
                format_ts(task.due_date) if task.due_date else None,
                format_ts(task.updated_at),
                task.id,
                task.user_id,
            ),
        )
        return rowcount > 0

    async def delete_task(self, task_id: str, owner_id: str) -> bool:
        """按 id + 所有者删除任务

        Returns:
            False 表示没有匹配的行
        """
        rowcount = await self._write(
            "delete_task",
            "DELETE FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, owner_id),
        )
        return rowcount > 0

    async def _read(self, operation: str, sql: str, params: Sequence[Any]) -> list:
        try:
            cursor = await self._conn.execute(sql, params)
            return list(await cursor.fetchall())
        except aiosqlite.OperationalError as e:
            raise StoreUnavailableError(operation, e) from e

    async def _write(self, operation: str, sql: str, params: Sequence[Any]) -> int:
        try:
            cursor = await self._conn.execute(sql, params)
            await self._conn.commit()
            return cursor.rowcount
        except aiosqlite.OperationalError as e:
            await self._conn.rollback()
            raise StoreUnavailableError(operation, e) from e
        except Exception:
            await self._conn.rollback()
            raise

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            id=row[0],
            user_id=row[1],
            title=row[2],
            description=row[3],
            status=row[4],
            priority=row[5],
            due_date=parse_ts(row[6]),
            created_at=parse_ts(row[7]),
            updated_at=parse_ts(row[8]),
        )
