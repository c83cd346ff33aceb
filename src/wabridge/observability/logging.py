"""Structured JSON logging with request ID support."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_request_id

ROOT_LOGGER_NAME = "wabridge"


class JsonFormatter(logging.Formatter):
    """JSON formatter that includes the request ID."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_obj["requestId"] = request_id

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_obj.update(record.extra_fields)

        return json.dumps(log_obj, default=str)


def _root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    # Only configure once (avoid duplicate handlers)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
        root.setLevel(logging.INFO)
        root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger that emits JSON through the wabridge handler.

    Loggers outside the wabridge namespace are nested under it so that
    configure_logging() controls them too.
    """
    _root()
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_logging(level: str = "INFO") -> None:
    """Set the log level for every wabridge logger."""
    _root().setLevel(level.upper())
