"""实时通道路由

WebSocket /ws/tasks: 推送本人任务的 taskCreated / taskUpdated / taskDeleted / taskStatusChanged 事件。
token 可通过 ?token= 在建连时提供，或随后发送 authenticate 消息。
"""

from fastapi import APIRouter, Depends, Query, WebSocket

from ..deps import get_realtime_gateway
from ..services.realtime_gateway import RealtimeGateway

router = APIRouter()


@router.websocket("/ws/tasks")
async def tasks_socket(
    websocket: WebSocket,
    token: str | None = Query(default=None, description="bearer token"),
    gateway: RealtimeGateway = Depends(get_realtime_gateway),
):
    await gateway.serve(websocket, token)
