"""ConnectionRegistry / Connection 测试"""

from starlette.websockets import WebSocketState
from zigtask.gateway.services.connection_registry import (
    CLOSE_GOING_AWAY,
    CLOSE_TRY_AGAIN_LATER,
    Connection,
    ConnectionRegistry,
)


class RecordingWebSocket:
    """只记录 close 调用的 WebSocket 替身"""

    def __init__(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.close_codes: list[int] = []

    async def close(self, code: int = 1000) -> None:
        self.close_codes.append(code)
        self.application_state = WebSocketState.DISCONNECTED


class TestConnectionRegistry:
    def test_associate_and_lookup(self):
        registry = ConnectionRegistry()
        first, second = Connection(RecordingWebSocket()), Connection(RecordingWebSocket())
        registry.register(first)
        registry.register(second)
        registry.associate(first.id, "U1")
        registry.associate(second.id, "U1")

        assert len(registry) == 2
        assert {c.id for c in registry.connections_for("U1")} == {first.id, second.id}
        assert registry.user_of(first.id) == "U1"
        assert registry.connections_for("U2") == []

    def test_reassociate_moves_connection(self):
        registry = ConnectionRegistry()
        conn = Connection(RecordingWebSocket())
        registry.register(conn)
        registry.associate(conn.id, "U1")
        registry.associate(conn.id, "U2")

        assert registry.connections_for("U1") == []
        assert registry.connections_for("U2") == [conn]

    def test_dissociate_keeps_registration(self):
        registry = ConnectionRegistry()
        conn = Connection(RecordingWebSocket())
        registry.register(conn)
        registry.associate(conn.id, "U1")
        registry.dissociate(conn.id)

        assert registry.user_of(conn.id) is None
        assert registry.connections_for("U1") == []
        assert registry.get(conn.id) is conn

    def test_associate_unknown_connection_ignored(self):
        registry = ConnectionRegistry()
        registry.associate("nope", "U1")
        assert registry.connections_for("U1") == []

    def test_unregister(self):
        registry = ConnectionRegistry()
        conn = Connection(RecordingWebSocket())
        registry.register(conn)
        registry.associate(conn.id, "U1")

        assert registry.unregister(conn.id) is conn
        assert registry.unregister(conn.id) is None
        assert len(registry) == 0
        assert registry.connections_for("U1") == []

    async def test_close_all(self):
        registry = ConnectionRegistry()
        sockets = [RecordingWebSocket(), RecordingWebSocket()]
        for ws in sockets:
            registry.register(Connection(ws))

        await registry.close_all()

        assert len(registry) == 0
        assert [ws.close_codes for ws in sockets] == [[CLOSE_GOING_AWAY], [CLOSE_GOING_AWAY]]


class TestConnection:
    def test_enqueue_until_full(self):
        conn = Connection(RecordingWebSocket(), queue_maxsize=2)
        assert conn.enqueue({"n": 1})
        assert conn.enqueue({"n": 2})
        assert not conn.enqueue({"n": 3})

    def test_mark_dead_drains_queue(self):
        conn = Connection(RecordingWebSocket(), queue_maxsize=2)
        conn.enqueue({"n": 1})
        conn.enqueue({"n": 2})

        conn.mark_dead()

        assert conn.dead
        assert conn.close_code == CLOSE_TRY_AGAIN_LATER
        assert conn.queue.qsize() == 1
        assert conn.queue.get_nowait() is None
        assert not conn.enqueue({"n": 3})

    async def test_close_is_idempotent(self):
        ws = RecordingWebSocket()
        conn = Connection(ws)
        await conn.close(CLOSE_GOING_AWAY)
        await conn.close(CLOSE_GOING_AWAY)
        assert ws.close_codes == [CLOSE_GOING_AWAY]

    async def test_close_skipped_when_peer_gone(self):
        ws = RecordingWebSocket()
        ws.client_state = WebSocketState.DISCONNECTED
        await Connection(ws).close()
        assert ws.close_codes == []
