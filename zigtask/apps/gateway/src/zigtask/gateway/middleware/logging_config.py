"""structlog 配置模块

ZIGTASK_LOG_FORMAT 选择渲染（dev 控制台 / json），ZIGTASK_LOG_LEVEL 控制级别。
网关日志里会出现 bearer token 与密码字段，统一在渲染前脱敏。
uvicorn 的访问日志与 LoggingMiddleware 的 http_request 重复，降到 WARNING。
Logfire APM：LOGFIRE_SEND_TO_LOGFIRE 控制，false 时只写本地日志。
"""

import logging
import os
from collections.abc import MutableMapping
from typing import Any

import structlog
from fastapi import FastAPI
from zigtask.core.config import get_log_format, get_log_level

REDACTED = "***"

# 出现在事件字典中即脱敏的键
SENSITIVE_KEYS = frozenset({"token", "password", "authorization", "jwt_secret"})

# 与请求日志重复或过于嘈杂的第三方 logger
_QUIET_LOGGERS = ("uvicorn.access", "aiosqlite", "websockets")


def redact_credentials(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor -- 凭据字段替换为 ***"""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def setup_logging() -> None:
    """初始化 structlog，并让标准库 logging（uvicorn 等）走同一渲染器"""
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_credentials,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if get_log_format() == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, get_log_level(), logging.INFO))
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logfire(app: FastAPI) -> None:
    """Logfire 可选初始化

    LOGFIRE_SEND_TO_LOGFIRE=true 时启用（需要 logfire extra 与 LOGFIRE_TOKEN），
    /health 与 /ready 探活请求不上报。
    """
    if os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower() != "true":
        return
    try:
        import logfire

        logfire.configure(service_name="zigtask-gateway")
        logfire.instrument_fastapi(app, excluded_urls="/health,/ready")
    except Exception as e:
        # Logfire 不可用时保持纯本地日志
        structlog.get_logger().warning(
            "logfire_init_failed",
            error_type=type(e).__name__,
            error=str(e),
        )
