"""ClientConfig -- 客户端配置加载

从环境变量加载 API 地址、实时通道地址、超时与重连参数。
"""

import os

import structlog
from pydantic import BaseModel, Field, ValidationError

log = structlog.get_logger()


class ClientConfig(BaseModel):
    """Client 包配置 -- 从环境变量加载

    环境变量:
        ZIGTASK_API_URL: HTTP API 基础 URL（默认 http://localhost:8000）
        ZIGTASK_WS_URL: 实时通道 URL（默认 ws://localhost:8000/ws/tasks）
        ZIGTASK_HTTP_TIMEOUT_S: HTTP 超时（秒，默认 10）
        ZIGTASK_WS_MAX_RECONNECT_ATTEMPTS: 最大连续重连次数（默认 5）
        ZIGTASK_WS_RECONNECT_DELAY_S: 重连基础间隔（秒，默认 1.0）
    """

    api_url: str = Field(
        default="http://localhost:8000",
        description="HTTP API 基础 URL",
    )
    ws_url: str = Field(
        default="ws://localhost:8000/ws/tasks",
        description="实时通道 URL",
    )
    http_timeout_s: float = Field(
        default=10.0,
        gt=0,
        description="HTTP 请求超时（秒）",
    )
    ws_max_reconnect_attempts: int = Field(
        default=5,
        ge=0,
        description="实时通道最大连续重连次数",
    )
    ws_reconnect_delay_s: float = Field(
        default=1.0,
        ge=0,
        description="实时通道重连基础间隔（秒），按尝试次数线性递增",
    )


# 环境变量 -> (字段名, 类型)
_NUMERIC_ENV = {
    "ZIGTASK_HTTP_TIMEOUT_S": ("http_timeout_s", float),
    "ZIGTASK_WS_MAX_RECONNECT_ATTEMPTS": ("ws_max_reconnect_attempts", int),
    "ZIGTASK_WS_RECONNECT_DELAY_S": ("ws_reconnect_delay_s", float),
}


def load_client_config() -> ClientConfig:
    """从环境变量加载 Client 配置

    数值非法（无法解析或越界）时记录 warning 并使用默认值，不阻塞启动。

    Returns:
        ClientConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("ZIGTASK_API_URL"):
        kwargs["api_url"] = val.rstrip("/")

    if val := os.environ.get("ZIGTASK_WS_URL"):
        kwargs["ws_url"] = val

    for env_var, (field, cast) in _NUMERIC_ENV.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            # 单字段校验，复用模型上的范围约束
            ClientConfig(**{field: cast(val)})
        except (ValueError, ValidationError):
            log.warning(
                "invalid_client_config",
                env_var=env_var,
                value=val,
                fallback=ClientConfig.model_fields[field].default,
            )
            continue
        kwargs[field] = cast(val)

    return ClientConfig(**kwargs)
