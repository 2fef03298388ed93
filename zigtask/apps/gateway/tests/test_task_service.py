"""TaskService 测试

测试内容：
1. 写入成功后发布对应事件，状态变化额外发布 StatusChanged
2. 失败的操作不发布事件
3. 事件发布失败不影响请求结果
4. 同一任务并发更新串行化，updated_at 严格递增
"""

import asyncio
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from zigtask.core.event_bus import EventBus
from zigtask.core.exceptions import NotFoundError, StoreUnavailableError, ValidationError
from zigtask.core.models import (
    StoredUser,
    TaskCreate,
    TaskEventType,
    TaskStatus,
    TaskUpdate,
)
from zigtask.core.store import create_store_group
from zigtask.gateway.services.task_service import TaskService

OWNER = "01JOWNER000000000000000000"


@pytest_asyncio.fixture
async def service_with_events(tmp_path: Path):
    store_group = await create_store_group(str(tmp_path / "test.db"))
    now = datetime.now(UTC)
    await store_group.user_store.create_user(
        StoredUser(
            id=OWNER,
            email="owner@example.com",
            password_hash="x",
            created_at=now,
            updated_at=now,
        )
    )
    bus = EventBus()
    events = []
    bus.subscribe(None, events.append)
    service = TaskService(store_group, bus)

    yield service, bus, events, store_group

    await store_group.conn.close()


class TestTaskServiceEvents:
    async def test_create_publishes_created(self, service_with_events):
        service, _, events, _ = service_with_events
        task = await service.create(OWNER, TaskCreate(title="Write report"))

        assert [e.type for e in events] == [TaskEventType.CREATED]
        assert events[0].task == task
        assert events[0].user_id == OWNER

    async def test_status_change_publishes_both_events(self, service_with_events):
        service, _, events, _ = service_with_events
        task = await service.create(OWNER, TaskCreate(title="Write report"))
        events.clear()

        updated = await service.update(task.id, OWNER, TaskUpdate(status=TaskStatus.DONE))

        assert [e.type for e in events] == [TaskEventType.UPDATED, TaskEventType.STATUS_CHANGED]
        changed = events[1]
        assert changed.old_status == TaskStatus.TODO
        assert changed.new_status == TaskStatus.DONE
        assert changed.task == updated

    async def test_update_without_status_change(self, service_with_events):
        service, _, events, _ = service_with_events
        task = await service.create(OWNER, TaskCreate(title="Write report"))
        events.clear()

        await service.update(task.id, OWNER, TaskUpdate(status=TaskStatus.TODO, title="Renamed"))
        assert [e.type for e in events] == [TaskEventType.UPDATED]

    async def test_delete_publishes_deleted(self, service_with_events):
        service, _, events, _ = service_with_events
        task = await service.create(OWNER, TaskCreate(title="Write report"))
        events.clear()

        await service.remove(task.id, OWNER)
        assert [(e.type, e.task_id) for e in events] == [(TaskEventType.DELETED, task.id)]

    async def test_failed_operations_publish_nothing(self, service_with_events):
        service, _, events, _ = service_with_events

        with pytest.raises(ValidationError):
            await service.create(OWNER, TaskCreate(title=" "))
        with pytest.raises(NotFoundError):
            await service.update("missing", OWNER, TaskUpdate(title="x"))
        with pytest.raises(NotFoundError):
            await service.remove("missing", OWNER)
        assert events == []

    async def test_publish_failure_does_not_fail_request(self, service_with_events, monkeypatch):
        service, bus, _, store_group = service_with_events

        def broken_publish(event):
            raise RuntimeError("bus down")

        monkeypatch.setattr(bus, "publish", broken_publish)
        task = await service.create(OWNER, TaskCreate(title="Write report"))

        # 写入已生效
        assert await store_group.task_store.get_task(task.id, OWNER) == task


class TestTaskServiceConsistency:
    async def test_concurrent_updates_serialized(self, service_with_events):
        service, _, events, _ = service_with_events
        task = await service.create(OWNER, TaskCreate(title="Write report"))
        events.clear()

        results = await asyncio.gather(
            *(service.update(task.id, OWNER, TaskUpdate(title=f"v{i}")) for i in range(5))
        )

        stamps = [e.timestamp for e in events]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == 5
        # 最后一次事件对应最终落库状态
        final = await service.get_one(task.id, OWNER)
        assert events[-1].task == final
        assert final in results
        assert service._task_locks == {}

    def test_next_updated_at_is_strictly_greater(self):
        future = datetime(2999, 1, 1, tzinfo=UTC)
        assert TaskService._next_updated_at(future) > future

    async def test_store_errors_propagate(self, service_with_events):
        service, _, _, store_group = service_with_events
        await store_group.conn.execute("DROP TABLE tasks")
        await store_group.conn.commit()

        with pytest.raises(StoreUnavailableError):
            await service.list(OWNER)
