"""UserStore SQLite 实现

邮箱统一小写后存储，唯一约束冲突转换为 ConflictError。
"""

import aiosqlite

from ..exceptions import ConflictError, StoreUnavailableError
from ..models.user import StoredUser
from .sqlite_init import format_ts, parse_ts

_COLUMNS = "id, email, first_name, last_name, password_hash, created_at, updated_at"


class SqliteUserStore:
    """UserStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_user(self, user: StoredUser) -> None:
        """创建用户

        Raises:
            ConflictError: 邮箱已被注册
        """
        try:
            await self._conn.execute(
                f"INSERT INTO users ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    user.id,
                    user.email.lower(),
                    user.first_name,
                    user.last_name,
                    user.password_hash,
                    format_ts(user.created_at),
                    format_ts(user.updated_at),
                ),
            )
            await self._conn.commit()
        except aiosqlite.IntegrityError as e:
            await self._conn.rollback()
            raise ConflictError("User with this email already exists") from e
        except aiosqlite.OperationalError as e:
            await self._conn.rollback()
            raise StoreUnavailableError("create_user", e) from e

    async def get_user(self, user_id: str) -> StoredUser | None:
        """根据 id 查询用户"""
        return await self._fetch_one("get_user", "id = ?", user_id)

    async def get_user_by_email(self, email: str) -> StoredUser | None:
        """根据邮箱查询用户（大小写不敏感）"""
        return await self._fetch_one("get_user_by_email", "email = ?", email.lower())

    async def _fetch_one(self, operation: str, where: str, value: str) -> StoredUser | None:
        try:
            cursor = await self._conn.execute(
                f"SELECT {_COLUMNS} FROM users WHERE {where}",
                (value,),
            )
            row = await cursor.fetchone()
        except aiosqlite.OperationalError as e:
            raise StoreUnavailableError(operation, e) from e
        if row is None:
            return None
        return StoredUser(
            id=row[0],
            email=row[1],
            first_name=row[2],
            last_name=row[3],
            password_hash=row[4],
            created_at=parse_ts(row[5]),
            updated_at=parse_ts(row[6]),
        )
