"""
网关日志：JSON 行格式 + trace_id，便于日志平台检索。
"""
from __future__ import annotations

import json
import logging
import uuid
from typing import Any

logger = logging.getLogger("gateway")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str = "INFO") -> None:
    """进程启动时调用一次；消息体本身即 JSON，格式串只保留时间与级别。"""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def json_log(level: str, msg: str, trace_id: str = "", exc_info: bool = False, **kwargs: Any) -> None:
    log_obj = {"level": level, "message": msg, "trace_id": trace_id, **kwargs}
    logger.log(_LEVELS.get(level, logging.INFO), json.dumps(log_obj, ensure_ascii=False, default=str), exc_info=exc_info)


def new_trace_id() -> str:
    return uuid.uuid4().hex
