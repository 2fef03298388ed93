"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import pytest_asyncio
from zigtask.core.models import StoredUser
from zigtask.core.store import StoreGroup, create_store_group


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """共享连接的 Store 实例组"""
    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.conn.close()


def _make_user(user_id: str, email: str) -> StoredUser:
    now = datetime.now(UTC)
    return StoredUser(
        id=user_id,
        email=email,
        first_name="Test",
        last_name="User",
        password_hash="not-a-real-hash",
        created_at=now,
        updated_at=now,
    )


@pytest_asyncio.fixture
async def owners(store_group: StoreGroup) -> tuple[str, str]:
    """两个已落库的用户（任务外键依赖）"""
    await store_group.user_store.create_user(_make_user("01JUSERA000000000000000000", "a@example.com"))
    await store_group.user_store.create_user(_make_user("01JUSERB000000000000000000", "b@example.com"))
    return "01JUSERA000000000000000000", "01JUSERB000000000000000000"
