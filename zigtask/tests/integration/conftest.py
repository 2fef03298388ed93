"""集成测试共享 fixture

ClientSession 通过 ASGITransport 调用 HTTP API，
实时通道通过内存管道直接接入 RealtimeGateway.serve，全部运行在同一事件循环中。
"""

import asyncio
import json
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from starlette.websockets import WebSocketDisconnect, WebSocketState
from zigtask.client import ClientConfig, ClientSession


class _ServerSocket:
    """网关侧的 WebSocket 接口"""

    def __init__(self, to_server: asyncio.Queue, to_client: asyncio.Queue) -> None:
        self._inbox = to_server
        self._outbox = to_client
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING

    async def accept(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def receive_text(self) -> str:
        raw = await self._inbox.get()
        if raw is None:
            self.client_state = WebSocketState.DISCONNECTED
            raise WebSocketDisconnect(1000)
        return raw

    async def send_json(self, message: dict) -> None:
        self._outbox.put_nowait(json.dumps(message))

    async def close(self, code: int = 1000) -> None:
        self.application_state = WebSocketState.DISCONNECTED
        self._outbox.put_nowait(None)


class _ClientSocket:
    """客户端侧的 websockets 连接接口"""

    def __init__(self, to_server: asyncio.Queue, to_client: asyncio.Queue) -> None:
        self._outbox = to_server
        self._inbox = to_client
        self._closed = False

    async def send(self, raw: str) -> None:
        self._outbox.put_nowait(raw)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._outbox.put_nowait(None)

    async def __aenter__(self) -> "_ClientSocket":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def __aiter__(self) -> "_ClientSocket":
        return self

    async def __anext__(self) -> str:
        raw = await self._inbox.get()
        if raw is None:
            raise StopAsyncIteration
        return raw


class InMemoryBridge:
    """RealtimeClient 的 connect 替身：每次建连启动一个 gateway.serve 任务"""

    def __init__(self, gateway) -> None:
        self._gateway = gateway
        self.server_tasks: list[asyncio.Task] = []
        self.connect_count = 0

    def connect(self, url: str) -> _ClientSocket:
        self.connect_count += 1
        to_server: asyncio.Queue = asyncio.Queue()
        to_client: asyncio.Queue = asyncio.Queue()
        self.server_tasks.append(
            asyncio.create_task(self._gateway.serve(_ServerSocket(to_server, to_client)))
        )
        return _ClientSocket(to_server, to_client)

    async def wait_closed(self) -> None:
        await asyncio.wait_for(
            asyncio.gather(*self.server_tasks, return_exceptions=True), 2
        )


@pytest_asyncio.fixture
async def integration_app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """集成测试用 FastAPI app（手动初始化，绕过 lifespan）"""
    monkeypatch.setenv("ZIGTASK_DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("ZIGTASK_BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")

    from zigtask.gateway.main import create_app, init_app_state, shutdown_app_state

    app = create_app()
    await init_app_state(app, str(tmp_path / "test.db"))
    yield app
    await shutdown_app_state(app)


@pytest_asyncio.fixture
async def bridge(integration_app):
    bridge = InMemoryBridge(integration_app.state.realtime_gateway)
    yield bridge
    await bridge.wait_closed()


@pytest_asyncio.fixture
async def make_session(integration_app, bridge):
    """创建已接入 app 的 ClientSession，测试结束统一关闭"""
    sessions: list[ClientSession] = []

    def _make() -> ClientSession:
        session = ClientSession(
            config=ClientConfig(
                api_url="http://test",
                ws_url="ws://test/ws/tasks",
                ws_reconnect_delay_s=0,
            ),
            transport=httpx.ASGITransport(app=integration_app),
            connect=bridge.connect,
        )
        sessions.append(session)
        return session

    yield _make

    for session in sessions:
        await session.close()
