"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + EventBus / 实时网关 / 业务服务装配 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from zigtask.core.config import (
    WS_HEARTBEAT_INTERVAL,
    WS_HEARTBEAT_TIMEOUT,
    WS_QUEUE_MAXSIZE,
    get_bcrypt_rounds,
    get_broadcast_scope,
    get_db_path,
    get_jwt_secret,
    get_token_ttl_seconds,
)
from zigtask.core.event_bus import EventBus
from zigtask.core.store import create_store_group

from .errors import register_exception_handlers
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import auth, health, realtime, tasks
from .services.auth_service import AuthService
from .services.connection_registry import ConnectionRegistry
from .services.realtime_gateway import RealtimeGateway
from .services.task_service import TaskService

log = structlog.get_logger()


async def init_app_state(app: FastAPI, db_path: str | None = None) -> None:
    """装配应用运行期组件并挂到 app.state

    Args:
        app: FastAPI 应用
        db_path: SQLite 路径，缺省读取 ZIGTASK_DB_PATH
    """
    store_group = await create_store_group(db_path or get_db_path())
    app.state.store_group = store_group

    # EventBus 与连接登记表随 lifespan 创建，不使用模块级单例
    event_bus = EventBus()
    app.state.event_bus = event_bus

    auth_service = AuthService(
        store_group.user_store,
        secret=get_jwt_secret(),
        token_ttl_seconds=get_token_ttl_seconds(),
        bcrypt_rounds=get_bcrypt_rounds(),
    )
    app.state.auth_service = auth_service
    app.state.task_service = TaskService(store_group, event_bus)

    scope = get_broadcast_scope()
    gateway = RealtimeGateway(
        ConnectionRegistry(),
        event_bus,
        auth_service,
        scope=scope,
        heartbeat_interval=WS_HEARTBEAT_INTERVAL,
        heartbeat_timeout=WS_HEARTBEAT_TIMEOUT,
        queue_maxsize=WS_QUEUE_MAXSIZE,
    )
    gateway.start()
    app.state.realtime_gateway = gateway

    log.info("app_state_initialized", broadcast_scope=scope.value)


async def shutdown_app_state(app: FastAPI) -> None:
    """关闭实时连接、清空订阅、关闭数据库连接"""
    gateway = getattr(app.state, "realtime_gateway", None)
    if gateway is not None:
        gateway.stop()
        await gateway.registry.close_all()

    event_bus = getattr(app.state, "event_bus", None)
    if event_bus is not None:
        event_bus.clear()

    store_group = getattr(app.state, "store_group", None)
    if store_group is not None:
        await store_group.conn.close()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时装配组件，关闭时清理连接"""
    await init_app_state(app)
    yield
    await shutdown_app_state(app)


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="ZigTask Gateway",
        version="0.1.0",
        description="ZigTask 任务管理 API + 实时同步通道",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    register_exception_handlers(app)

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    # 注册路由
    app.include_router(auth.router, tags=["auth"])
    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(realtime.router, tags=["realtime"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
