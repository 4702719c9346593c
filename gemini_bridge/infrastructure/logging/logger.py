"""JSON-lines 日志。

日志写入 {log_dir}/gemini.log，每行一个 JSON 对象。通过 register_secret()
登记的值（例如 API 密钥）在输出前统一替换为 "***"。
"""

import json
import logging
import threading
from pathlib import Path
from datetime import datetime, timezone
from typing import Set

from gemini_bridge.config.settings import settings


REDACTED = "***"
# 短于该长度的值不登记
MIN_SECRET_LENGTH = 8

_secrets: Set[str] = set()
_secrets_lock = threading.Lock()


def register_secret(value) -> None:
    """登记一个不允许出现在日志中的值。"""

    if isinstance(value, str) and len(value.strip()) >= MIN_SECRET_LENGTH:
        with _secrets_lock:
            _secrets.add(value.strip())


def scrub(text: str) -> str:
    with _secrets_lock:
        secrets = sorted(_secrets, key=len, reverse=True)
    for secret in secrets:
        text = text.replace(secret, REDACTED)
    return text


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if settings.log_redact_content:
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
        return scrub(json.dumps(payload, ensure_ascii=False, default=str))


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("gemini_bridge")
    logger.setLevel(logging.INFO)
    register_secret(settings.api_key)
    if logger.handlers:
        return logger
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "gemini.log", encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(JsonFormatter())
    logger.addHandler(fh)
    return logger


logger = setup_logger()
