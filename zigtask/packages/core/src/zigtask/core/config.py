"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、鉴权参数、实时通道心跳与广播范围等可配置项。
测试会在运行时覆盖的项以函数形式提供，其余为模块级常量。
"""

import os
from enum import StrEnum
from pathlib import Path

import structlog

log = structlog.get_logger()


class BroadcastScope(StrEnum):
    """实时事件投递范围"""

    # 仅投递给任务所有者的连接（默认）
    OWNER = "owner"
    # 额外投递给所有在线连接（旧行为，会泄露其他用户的任务内容）
    GLOBAL = "global"


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("ZIGTASK_DATA_DIR", "data"))


def _int_env(name: str, default: int) -> int:
    """读取整数环境变量，非法值回退默认值"""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning("invalid_int_config", env_var=name, value=raw, fallback=default)
        return default


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "ZIGTASK_DB_PATH",
        str(_get_base_dir() / "sqlite" / "zigtask.db"),
    )


def get_jwt_secret() -> str:
    """获取 token 签名密钥"""
    return os.environ.get("ZIGTASK_JWT_SECRET", "zigtask-dev-secret-change-me")


def get_token_ttl_seconds() -> int:
    """获取 token 有效期（秒，默认 7 天）"""
    return _int_env("ZIGTASK_TOKEN_TTL_S", 7 * 24 * 3600)


def get_bcrypt_rounds() -> int:
    """获取 bcrypt cost（bcrypt 要求 4..31）"""
    return min(max(_int_env("ZIGTASK_BCRYPT_ROUNDS", 12), 4), 31)


def get_broadcast_scope() -> BroadcastScope:
    """获取实时事件投递范围，非法值回退 owner"""
    raw = os.environ.get("ZIGTASK_BROADCAST_SCOPE", BroadcastScope.OWNER.value)
    try:
        return BroadcastScope(raw.lower())
    except ValueError:
        log.warning(
            "invalid_broadcast_scope",
            env_var="ZIGTASK_BROADCAST_SCOPE",
            value=raw,
            fallback=BroadcastScope.OWNER.value,
        )
        return BroadcastScope.OWNER


def get_log_format() -> str:
    """日志渲染模式："json"（生产）或 "dev"（默认），非法值回退 dev"""
    raw = os.environ.get("ZIGTASK_LOG_FORMAT", "dev").lower()
    return raw if raw in ("json", "dev") else "dev"


def get_log_level() -> str:
    """根 logger 级别名（默认 INFO）"""
    return os.environ.get("ZIGTASK_LOG_LEVEL", "INFO").upper()


# Token 签名算法
JWT_ALGORITHM: str = "HS256"

# WebSocket 心跳间隔（秒）：入站静默超过该值时服务端发送 ping
WS_HEARTBEAT_INTERVAL: float = float(
    os.environ.get("ZIGTASK_WS_HEARTBEAT_INTERVAL", "15")
)

# WebSocket 心跳超时（秒）：入站静默超过该值视为断开
WS_HEARTBEAT_TIMEOUT: float = float(
    os.environ.get("ZIGTASK_WS_HEARTBEAT_TIMEOUT", "45")
)

# 每个连接的待发送队列上限，写满视为慢消费者并断开
WS_QUEUE_MAXSIZE: int = int(os.environ.get("ZIGTASK_WS_QUEUE_MAXSIZE", "100"))

# 任务标题最大长度
TASK_TITLE_MAX_LENGTH: int = 255
