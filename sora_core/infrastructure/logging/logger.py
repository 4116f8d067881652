"""服务端与客户端核心共用的 JSON 行日志。

调用方记录点分事件名，并把结构化字段放在 ``extra={"extra": {...}}`` 中；
JsonFormatter 会把这些字段平铺到 ``ts``/``level``/``name``/``event`` 旁边。
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from sora_core.config.settings import settings

LOGGER_NAME = "sora_core"
LOG_FILE = "sora.log"

# 可能包含用户文本的字段，开启 log_redact_content 时截断
CONTENT_FIELDS = ("text", "content", "query", "message")
REDACTED_LENGTH = 64
RESERVED = ("ts", "level", "name", "event", "exc")


class JsonFormatter(logging.Formatter):
    def __init__(self, redact: bool = False):
        super().__init__()
        self._redact = redact

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "event": self._clip(record.getMessage()),
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            for key, value in extra.items():
                if key in RESERVED:
                    key = f"extra_{key}"
                if key in CONTENT_FIELDS and isinstance(value, str):
                    value = self._clip(value)
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)

    def _clip(self, text: str) -> str:
        if self._redact:
            return (text or "")[:REDACTED_LENGTH]
        return text


def setup_logger(
    log_dir: Optional[str] = None,
    level: Optional[str] = None,
    console: Optional[bool] = None,
) -> logging.Logger:
    """配置 ``sora_core`` logger；重复调用会替换之前添加的 handler。"""

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel((level or settings.log_level).upper())
    for handler in list(logger.handlers):
        if getattr(handler, "sora_handler", False):
            logger.removeHandler(handler)
            handler.close()

    formatter = JsonFormatter(redact=settings.log_redact_content)
    path = Path(log_dir or settings.log_dir)
    path.mkdir(parents=True, exist_ok=True)
    handlers: list[logging.Handler] = [logging.FileHandler(path / LOG_FILE, encoding="utf-8")]
    if settings.log_console if console is None else console:
        handlers.append(logging.StreamHandler(sys.stderr))
    for handler in handlers:
        handler.sora_handler = True
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


logger = setup_logger()
