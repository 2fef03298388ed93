"""ConnectionRegistry -- 在线实时连接登记表

每个连接持有一个有界 asyncio.Queue，由独立的 sender 任务按序写出，
保证单连接内消息顺序与入队顺序一致。队列写满视为慢消费者。

登记表维护三张映射：连接 ID -> 连接、用户 ID -> 连接 ID 集合、连接 ID -> 用户 ID，
登记 / 关联 / 注销均为 O(1)。实例随应用 lifespan 创建与销毁。
"""

import asyncio
import time
from collections import defaultdict
from typing import Any

import structlog
from starlette.websockets import WebSocket, WebSocketState
from ulid import ULID

log = structlog.get_logger()

# 正常关闭 / 服务端下线 / 慢消费者
CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_TRY_AGAIN_LATER = 1013


class Connection:
    """单个实时连接"""

    def __init__(self, websocket: WebSocket, queue_maxsize: int = 100) -> None:
        self.id = str(ULID())
        self.websocket = websocket
        # None 为关闭哨兵
        self.queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue(
            maxsize=queue_maxsize
        )
        self.last_seen = time.monotonic()
        self.dead = False
        self.close_code = CLOSE_NORMAL
        self._closed = False

    def touch(self) -> None:
        """收到任何入站消息都刷新存活时间"""
        self.last_seen = time.monotonic()

    def silent_for(self) -> float:
        return time.monotonic() - self.last_seen

    def enqueue(self, message: dict[str, Any]) -> bool:
        """非阻塞入队，返回 False 表示队列已满或连接已失效"""
        if self.dead:
            return False
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def mark_dead(self, close_code: int = CLOSE_TRY_AGAIN_LATER) -> None:
        """丢弃待发送消息并通知 sender 关闭连接"""
        if self.dead:
            return
        self.dead = True
        self.close_code = close_code
        while not self.queue.empty():
            self.queue.get_nowait()
        self.queue.put_nowait(None)

    async def close(self, code: int | None = None) -> None:
        """关闭底层 WebSocket，可重复调用"""
        if self._closed:
            return
        self._closed = True
        if (
            self.websocket.client_state == WebSocketState.DISCONNECTED
            or self.websocket.application_state == WebSocketState.DISCONNECTED
        ):
            return
        try:
            await self.websocket.close(code=code or self.close_code)
        except (RuntimeError, OSError) as e:
            # 对端已断开，关闭帧无法送达
            log.debug("realtime_close_failed", connection_id=self.id, error=str(e))


class ConnectionRegistry:
    """在线连接登记表"""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._by_user: dict[str, set[str]] = defaultdict(set)
        self._user_of: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def register(self, connection: Connection) -> None:
        """登记新连接（尚未关联用户）"""
        self._connections[connection.id] = connection

    def associate(self, connection_id: str, user_id: str) -> None:
        """将连接关联到用户；已关联其他用户时先解除原关联"""
        if connection_id not in self._connections:
            return
        self.dissociate(connection_id)
        self._user_of[connection_id] = user_id
        self._by_user[user_id].add(connection_id)

    def dissociate(self, connection_id: str) -> None:
        """解除连接与用户的关联"""
        user_id = self._user_of.pop(connection_id, None)
        if user_id is None:
            return
        connection_ids = self._by_user.get(user_id)
        if connection_ids is not None:
            connection_ids.discard(connection_id)
            if not connection_ids:
                del self._by_user[user_id]

    def unregister(self, connection_id: str) -> Connection | None:
        """注销连接，返回被移除的连接（不存在时返回 None）"""
        self.dissociate(connection_id)
        return self._connections.pop(connection_id, None)

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def user_of(self, connection_id: str) -> str | None:
        """连接当前关联的用户 ID"""
        return self._user_of.get(connection_id)

    def connections_for(self, user_id: str) -> list[Connection]:
        """指定用户的全部在线连接"""
        return [
            self._connections[cid]
            for cid in self._by_user.get(user_id, ())
            if cid in self._connections
        ]

    def all_connections(self) -> list[Connection]:
        return list(self._connections.values())

    async def close_all(self, code: int = CLOSE_GOING_AWAY) -> None:
        """关闭并注销全部连接（应用关闭时调用）"""
        connections = self.all_connections()
        for connection in connections:
            self.unregister(connection.id)
            await connection.close(code)
        if connections:
            log.info("realtime_connections_closed", count=len(connections))
