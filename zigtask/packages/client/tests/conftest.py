"""Client 包测试 fixtures

提供不依赖网络的替身：
- FakeTaskApi: TaskApiClient 的内存替身，可挂起/注入失败
- RecordingNotifier: 记录用户可见反馈
- FakeWebSocket / fake_connect: 可编排的实时通道连接
"""

import asyncio
import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from zigtask.client import TaskSyncStore
from zigtask.client.exceptions import ApiError
from zigtask.core.models import Task, TaskCreate, TasksByStatus, TaskStatus, TaskUpdate

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


class FakeTaskApi:
    """TaskApiClient 内存替身"""

    def __init__(self) -> None:
        self.grouped = TasksByStatus()
        self.calls: list[tuple] = []
        self.loaded = asyncio.Event()
        # update_task 行为控制
        self.update_started = asyncio.Event()
        self.update_gate: asyncio.Event | None = None
        self.update_response: Task | None = None
        self.update_error: ApiError | None = None
        self.create_response: Task | None = None
        self.create_error: ApiError | None = None
        self.delete_error: ApiError | None = None
        self.load_error: ApiError | None = None
        # 设置后 get_tasks_by_status 在返回快照前挂起，快照取自调用时刻
        self.load_gate: asyncio.Event | None = None

    async def get_tasks_by_status(self) -> TasksByStatus:
        self.calls.append(("load",))
        snapshot = self.grouped
        self.loaded.set()
        if self.load_gate is not None:
            await self.load_gate.wait()
        if self.load_error is not None:
            raise self.load_error
        return snapshot

    async def create_task(self, data: TaskCreate) -> Task:
        self.calls.append(("create", data))
        if self.create_error is not None:
            raise self.create_error
        return self.create_response

    async def update_task(self, task_id: str, patch: TaskUpdate) -> Task:
        self.calls.append(("update", task_id, patch))
        self.update_started.set()
        if self.update_gate is not None:
            await self.update_gate.wait()
        if self.update_error is not None:
            raise self.update_error
        return self.update_response

    async def delete_task(self, task_id: str) -> None:
        self.calls.append(("delete", task_id))
        if self.delete_error is not None:
            raise self.delete_error


class RecordingNotifier:
    """记录 success / error 反馈"""

    def __init__(self) -> None:
        self.successes: list[str] = []
        self.errors: list[str] = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


class FakeWebSocket:
    """实时通道连接替身

    push() 注入服务端消息，end() 模拟服务端断开；sent 记录客户端发出的消息。
    """

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    def push(self, event: str, data: dict[str, Any] | None = None) -> None:
        message: dict[str, Any] = {"event": event}
        if data is not None:
            message["data"] = data
        self._incoming.put_nowait(json.dumps(message))

    def push_raw(self, raw: str) -> None:
        self._incoming.put_nowait(raw)

    def end(self) -> None:
        self._incoming.put_nowait(None)

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.end()

    async def __aenter__(self) -> "FakeWebSocket":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str:
        raw = await self._incoming.get()
        if raw is None:
            raise StopAsyncIteration
        return raw


class FakeConnector:
    """按顺序交出预先准备的连接，用尽后模拟拒绝连接"""

    def __init__(self, sockets: list[FakeWebSocket]) -> None:
        self.sockets = list(sockets)
        self.urls: list[str] = []

    def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if not self.sockets:
            raise OSError("connection refused")
        return self.sockets.pop(0)


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """构造任务快照；minutes 决定 created_at，version 决定 updated_at"""

    def _make(
        task_id: str,
        status: TaskStatus = TaskStatus.TODO,
        minutes: int = 0,
        version: int = 0,
        **overrides: Any,
    ) -> Task:
        created = BASE_TIME + timedelta(minutes=minutes)
        fields: dict[str, Any] = {
            "id": task_id,
            "title": f"task {task_id}",
            "status": status,
            "user_id": "U1",
            "created_at": created,
            "updated_at": created + timedelta(seconds=version),
        }
        fields.update(overrides)
        return Task(**fields)

    return _make


@pytest.fixture
def fake_api() -> FakeTaskApi:
    return FakeTaskApi()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sync_store(fake_api: FakeTaskApi, notifier: RecordingNotifier) -> TaskSyncStore:
    return TaskSyncStore(fake_api, notifier)


@pytest.fixture
def make_socket() -> Callable[[], FakeWebSocket]:
    return FakeWebSocket


@pytest.fixture
def make_connector() -> Callable[[list[FakeWebSocket]], FakeConnector]:
    return FakeConnector
