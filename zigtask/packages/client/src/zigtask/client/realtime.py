"""RealtimeClient -- 实时通道客户端

连接 /ws/tasks，建连后发送 authenticate 消息（token 不出现在 URL 中），
将收到的任务事件交给 TaskSyncStore 合并，并应答服务端 ping。

断线后按线性退避重连，连续失败超过上限即放弃。
服务端不回放鉴权之前的事件，因此每次鉴权成功（包括首次）都会全量 load() 补偿；
load() 按 last-write-wins 合并，不会覆盖补偿期间到达的推送。
"""

import asyncio
import json
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from zigtask.core.models import is_task_event_name, parse_ws_event

from .exceptions import ApiError
from .sync_store import TaskSyncStore

log = structlog.get_logger()

Connector = Callable[[str], AbstractAsyncContextManager[Any]]


class RealtimeClient:
    """实时通道客户端"""

    def __init__(
        self,
        url: str,
        store: TaskSyncStore,
        token: str,
        max_reconnect_attempts: int = 5,
        reconnect_delay_s: float = 1.0,
        connect: Connector = websockets.connect,
    ) -> None:
        """
        Args:
            url: 实时通道 URL（如 ws://localhost:8000/ws/tasks）
            store: 事件合并目标
            token: bearer token
            max_reconnect_attempts: 最大连续重连次数
            reconnect_delay_s: 重连基础间隔，第 n 次重连等待 n 倍
            connect: 建连函数（测试注入）
        """
        self._url = url
        self._store = store
        self._token = token
        self._max_attempts = max_reconnect_attempts
        self._delay = reconnect_delay_s
        self._connect = connect
        self._ws: Any = None
        self._runner: asyncio.Task | None = None
        self._stopping = False
        self.authenticated = asyncio.Event()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def start(self) -> None:
        """后台启动连接循环"""
        if self._runner is None or self._runner.done():
            self._stopping = False
            self._runner = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """停止连接循环并关闭连接，可在事件处理回调中调用"""
        self._stopping = True
        self.authenticated.clear()
        if self._ws is not None:
            await self._ws.close()
        runner = self._runner
        if runner is not None and runner is not asyncio.current_task():
            runner.cancel()
            await asyncio.gather(runner, return_exceptions=True)
            self._runner = None

    async def run(self) -> None:
        """连接循环：断线重连直到 stop() 或重连次数耗尽"""
        attempts = 0
        while not self._stopping:
            try:
                async with self._connect(self._url) as ws:
                    self._ws = ws
                    attempts = 0
                    log.info("realtime_connected", url=self._url)
                    await ws.send(
                        json.dumps({"event": "authenticate", "data": {"token": self._token}})
                    )
                    await self._listen(ws)
            except (ConnectionClosed, WebSocketException, OSError) as e:
                log.warning(
                    "realtime_disconnected",
                    error_type=type(e).__name__,
                    error=str(e),
                )
            finally:
                self._ws = None
                self.authenticated.clear()

            if self._stopping:
                break
            attempts += 1
            if attempts > self._max_attempts:
                log.error("realtime_reconnect_exhausted", attempts=attempts - 1)
                break
            await asyncio.sleep(self._delay * attempts)

    async def _listen(self, ws: Any) -> None:
        async for raw in ws:
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                log.warning("realtime_invalid_message")
                continue
            if not isinstance(message, dict):
                continue
            await self._dispatch(ws, message)
            if self._stopping:
                return

    async def _dispatch(self, ws: Any, message: dict[str, Any]) -> None:
        event = message.get("event")
        data = message.get("data")
        if not isinstance(data, dict):
            data = {}

        if event == "ping":
            await ws.send(json.dumps({"event": "pong"}))
        elif event == "authenticated":
            await self._on_authenticated(data)
        elif isinstance(event, str) and is_task_event_name(event):
            try:
                task_event = parse_ws_event(event, data)
            except ValueError as e:
                log.warning("realtime_invalid_task_event", event=event, error=str(e))
                return
            self._store.apply_event(task_event)
        elif event == "error":
            log.warning("realtime_server_error", message=data.get("message"))

    async def _on_authenticated(self, data: dict[str, Any]) -> None:
        if not data.get("success"):
            # token 无效：重连也无法恢复
            log.error("realtime_authentication_rejected", error=data.get("error"))
            self._stopping = True
            return

        log.info("realtime_authenticated", user_id=data.get("userId"))
        # 初始加载之后、鉴权之前的变更同样不会推送，首次鉴权也要补偿
        try:
            await self._store.load()
        except ApiError as e:
            log.warning("realtime_resync_failed", error=e.message)
        self.authenticated.set()
