import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from chat_core.config.settings import settings


class JsonFormatter(logging.Formatter):
    def __init__(self, redact_content: bool = False):
        super().__init__()
        self._redact_content = redact_content

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self._redact_content:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(log_dir: Optional[str] = None, level: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger("chat_core")
    logger.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))
    # 重复初始化（例如测试中）时不叠加 handler
    if any(getattr(h, "_chat_core", False) for h in logger.handlers):
        return logger
    target = Path(log_dir or settings.log_dir)
    target.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(target / "chat_core.log", encoding="utf-8", delay=True)
    fh.setLevel(logger.level)
    fh.setFormatter(JsonFormatter(redact_content=settings.log_redact_content))
    fh._chat_core = True  # type: ignore[attr-defined]
    logger.addHandler(fh)
    return logger


logger = setup_logger()
