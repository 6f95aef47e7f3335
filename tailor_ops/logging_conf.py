from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Optional

# LogRecord attributes that are not caller-supplied extras
_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# Libraries that log every request at INFO
_CHATTY_LOGGERS = ("twilio.http_client", "sqlalchemy.engine", "aiosqlite")

_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


class JsonFormatter(logging.Formatter):
    """One JSON object per line; extra= fields are copied to the top level"""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({k: v for k, v in record.__dict__.items() if k not in _RECORD_FIELDS})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


def configure_logging(level: str = "INFO", json_format: bool = False, quiet: Optional[tuple] = _CHATTY_LOGGERS) -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    # Replace, don't append: configure_logging may run more than once
    root.handlers = [handler]
    for name in _UVICORN_LOGGERS:
        logging.getLogger(name).handlers = [handler]

    for name in quiet or ():
        logging.getLogger(name).setLevel(logging.WARNING)
