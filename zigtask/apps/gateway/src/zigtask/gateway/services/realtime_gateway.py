"""RealtimeGateway -- 任务事件的 WebSocket 扇出

订阅 EventBus 上的全部任务事件，将其转成
    {"event": "taskCreated" | ..., "data": {taskId, userId, action, task?, oldStatus?, newStatus?}}
投递到事件所有者的每个在线连接。

连接鉴权与 HTTP 共用 bearer token：可在建连时通过 ?token= 提供，
也可随后发送 {"event": "authenticate", "data": {"token": ...}}，后者覆盖前者。
只携带 userId 而没有有效 token 的声明一律拒绝；未鉴权连接收不到任何任务事件。

心跳：入站静默达到 heartbeat_interval 时发送 ping，静默达到 heartbeat_timeout 时关闭连接。
"""

import asyncio
import json
from typing import Any

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect
from zigtask.core.config import BroadcastScope
from zigtask.core.event_bus import EventBus, Subscription
from zigtask.core.exceptions import ZigTaskError
from zigtask.core.models import TaskEvent

from .auth_service import AuthService
from .connection_registry import (
    CLOSE_GOING_AWAY,
    CLOSE_NORMAL,
    CLOSE_TRY_AGAIN_LATER,
    Connection,
    ConnectionRegistry,
)

log = structlog.get_logger()


class RealtimeGateway:
    """实时通道网关"""

    def __init__(
        self,
        registry: ConnectionRegistry,
        event_bus: EventBus,
        auth_service: AuthService,
        scope: BroadcastScope = BroadcastScope.OWNER,
        heartbeat_interval: float = 15.0,
        heartbeat_timeout: float = 45.0,
        queue_maxsize: int = 100,
    ) -> None:
        self._registry = registry
        self._event_bus = event_bus
        self._auth = auth_service
        self._scope = scope
        self._heartbeat_interval = heartbeat_interval
        self._heartbeat_timeout = heartbeat_timeout
        self._queue_maxsize = queue_maxsize
        self._subscription: Subscription | None = None

        if scope is BroadcastScope.GLOBAL:
            log.warning(
                "realtime_global_broadcast_enabled",
                message="任务事件将投递给所有在线连接，包括其他用户",
            )

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    def start(self) -> None:
        """订阅 EventBus 全部任务事件"""
        if self._subscription is None:
            self._subscription = self._event_bus.subscribe(None, self.handle_event)

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def handle_event(self, event: TaskEvent) -> None:
        """EventBus 回调：把事件放入目标连接的发送队列"""
        message = {"event": event.ws_event_name, "data": event.to_payload()}
        if self._scope is BroadcastScope.GLOBAL:
            targets = self._registry.all_connections()
        else:
            targets = self._registry.connections_for(event.user_id)

        for connection in targets:
            self._deliver(connection, message)

    def _deliver(self, connection: Connection, message: dict[str, Any]) -> None:
        if connection.enqueue(message):
            return
        # 队列写满：慢消费者，注销并关闭
        log.warning(
            "realtime_slow_consumer_dropped",
            connection_id=connection.id,
            user_id=self._registry.user_of(connection.id),
        )
        self._registry.unregister(connection.id)
        connection.mark_dead(CLOSE_TRY_AGAIN_LATER)

    async def serve(self, websocket: WebSocket, token: str | None = None) -> None:
        """处理单个 WebSocket 连接直到断开"""
        await websocket.accept()
        connection = Connection(websocket, queue_maxsize=self._queue_maxsize)
        self._registry.register(connection)
        log.info("realtime_connection_opened", connection_id=connection.id)

        sender = asyncio.create_task(self._sender_loop(connection))
        close_code = CLOSE_NORMAL
        try:
            if token:
                await self._authenticate(connection, token)
            close_code = await self._receive_loop(connection)
        finally:
            self._registry.unregister(connection.id)
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
            await connection.close(close_code)
            log.info(
                "realtime_connection_closed",
                connection_id=connection.id,
                close_code=close_code,
            )

    async def _sender_loop(self, connection: Connection) -> None:
        """连接唯一的写出者：按入队顺序发送"""
        while True:
            message = await connection.queue.get()
            if message is None:
                await connection.close()
                return
            try:
                await connection.websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                log.info(
                    "realtime_send_failed",
                    connection_id=connection.id,
                    error_type=type(e).__name__,
                )
                self._registry.unregister(connection.id)
                connection.dead = True
                return

    async def _receive_loop(self, connection: Connection) -> int:
        """读取客户端消息并维护心跳，返回关闭码"""
        websocket = connection.websocket
        while not connection.dead:
            try:
                raw = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=self._heartbeat_interval,
                )
            except TimeoutError:
                if connection.silent_for() >= self._heartbeat_timeout:
                    log.info("realtime_heartbeat_timeout", connection_id=connection.id)
                    return CLOSE_GOING_AWAY
                connection.enqueue({"event": "ping"})
                continue
            except WebSocketDisconnect:
                return CLOSE_NORMAL
            except KeyError:
                # Starlette 的 receive_text 遇到二进制帧时没有 "text" 键
                connection.touch()
                log.debug("realtime_binary_frame", connection_id=connection.id)
                connection.enqueue(_error_message("text frames only"))
                continue

            connection.touch()
            await self._handle_client_message(connection, raw)
        return connection.close_code

    async def _handle_client_message(self, connection: Connection, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            connection.enqueue(_error_message("invalid JSON message"))
            return
        if not isinstance(message, dict):
            connection.enqueue(_error_message("message must be a JSON object"))
            return

        event = message.get("event")
        data = message.get("data")
        if event == "authenticate":
            token = data.get("token") if isinstance(data, dict) else None
            if not isinstance(token, str) or not token:
                self._registry.dissociate(connection.id)
                connection.enqueue(
                    _authenticated_message(False, error="A valid token is required")
                )
                return
            await self._authenticate(connection, token)
        elif event == "ping":
            connection.enqueue({"event": "pong"})
        elif event == "pong":
            return
        else:
            log.debug("realtime_unknown_event", connection_id=connection.id, event=event)
            connection.enqueue(_error_message(f"unknown event: {event}"))

    async def _authenticate(self, connection: Connection, token: str) -> None:
        """校验 token 并关联用户；失败时解除已有关联"""
        try:
            user = await self._auth.authenticate(token)
        except ZigTaskError as e:
            self._registry.dissociate(connection.id)
            log.info(
                "realtime_authentication_failed",
                connection_id=connection.id,
                reason=e.message,
            )
            connection.enqueue(_authenticated_message(False, error=e.message))
            return

        self._registry.associate(connection.id, user.id)
        log.info(
            "realtime_authenticated",
            connection_id=connection.id,
            user_id=user.id,
        )
        connection.enqueue(_authenticated_message(True, user_id=user.id))


def _authenticated_message(
    success: bool,
    user_id: str | None = None,
    error: str | None = None,
) -> dict[str, Any]:
    data: dict[str, Any] = {"success": success}
    if user_id is not None:
        data["userId"] = user_id
    if error is not None:
        data["error"] = error
    return {"event": "authenticated", "data": data}


def _error_message(message: str) -> dict[str, Any]:
    return {"event": "error", "data": {"message": message}}
