"""ClientSession -- 登录态 + 任务集合 + 实时通道的装配

任意已登录请求收到 401 都会触发 sign_out：丢弃 token、关闭实时通道、清空任务集合。
"""

from collections.abc import Callable

import httpx
import structlog
from zigtask.core.models import User

from .api_client import TaskApiClient
from .config import ClientConfig, load_client_config
from .realtime import Connector, RealtimeClient
from .sync_store import Notifier, TaskSyncStore

log = structlog.get_logger()


class ClientSession:
    """客户端会话"""

    def __init__(
        self,
        config: ClientConfig | None = None,
        notifier: Notifier | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        connect: Connector | None = None,
        on_signed_out: Callable[[], None] | None = None,
    ) -> None:
        """
        Args:
            config: 客户端配置，缺省从环境变量加载
            notifier: 用户可见反馈
            transport: HTTP transport（测试注入）
            connect: WebSocket 建连函数（测试注入）
            on_signed_out: 登出后回调（如跳转登录页）
        """
        self.config = config or load_client_config()
        self.api = TaskApiClient(
            self.config.api_url,
            timeout_s=self.config.http_timeout_s,
            on_unauthorized=self._handle_unauthorized,
            transport=transport,
        )
        self.store = TaskSyncStore(self.api, notifier)
        self.user: User | None = None
        self.realtime: RealtimeClient | None = None
        self._connect = connect
        self._on_signed_out = on_signed_out

    @property
    def signed_in(self) -> bool:
        return self.user is not None and self.api.token is not None

    async def sign_in(self, email: str, password: str, realtime: bool = True) -> User:
        """登录并加载任务集合，可选启动实时通道"""
        user, token = await self.api.sign_in(email, password)
        await self._start(user, token, realtime)
        return user

    async def sign_up(
        self,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        realtime: bool = True,
    ) -> User:
        """注册后直接进入登录态"""
        user, token = await self.api.sign_up(email, password, first_name, last_name)
        await self._start(user, token, realtime)
        return user

    async def sign_out(self) -> None:
        """丢弃 token、关闭实时通道、清空任务集合"""
        was_signed_in = self.user is not None
        self.api.token = None
        self.user = None
        if self.realtime is not None:
            await self.realtime.stop()
            self.realtime = None
        self.store.reset()
        if was_signed_in:
            log.info("session_signed_out")
            if self._on_signed_out is not None:
                self._on_signed_out()

    async def close(self) -> None:
        await self.sign_out()
        await self.api.close()

    async def _start(self, user: User, token: str, realtime: bool) -> None:
        self.user = user
        self.api.token = token
        await self.store.load()
        if realtime:
            kwargs = {"connect": self._connect} if self._connect is not None else {}
            self.realtime = RealtimeClient(
                self.config.ws_url,
                self.store,
                token,
                max_reconnect_attempts=self.config.ws_max_reconnect_attempts,
                reconnect_delay_s=self.config.ws_reconnect_delay_s,
                **kwargs,
            )
            self.realtime.start()
        log.info("session_signed_in", user_id=user.id, realtime=realtime)

    async def _handle_unauthorized(self) -> None:
        log.warning("session_forced_sign_out")
        await self.sign_out()
