"""Logging setup for the sensor hub daemon."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from enum import Enum
from logging import Handler
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from .settings import RuntimeConfig

SYSLOG_SOCKETS = (Path("/dev/log"), Path("/var/run/log"))
LOG_STREAM_ENV = "SENSORHUB_LOG_STREAM"

_RESERVED_LOG_KEYS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


def _serialise_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, bytes):
        return f"[{' '.join(f'{b:02X}' for b in value)}]"
    if isinstance(value, msgspec.Struct):
        return msgspec.to_builtins(value)
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """Emit one JSON object per log line, trimming the package prefix."""

    PREFIX = "sensorhub."

    def format(self, record: logging.LogRecord) -> str:
        logger_name = record.name
        if logger_name.startswith(self.PREFIX):
            logger_name = logger_name[len(self.PREFIX) :]

        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": logger_name,
            "message": record.getMessage(),
        }

        extras = {
            key: _serialise_value(value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_KEYS and not key.startswith("_")
        }
        if extras:
            payload["extra"] = extras

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return msgspec.json.encode(payload).decode("utf-8")


def _build_handler() -> Handler:
    if os.environ.get(LOG_STREAM_ENV):
        return logging.StreamHandler()

    for candidate in SYSLOG_SOCKETS:
        if candidate.exists():
            handler = SysLogHandler(address=str(candidate), facility=SysLogHandler.LOG_DAEMON)
            handler.ident = "sensorhub "
            return handler
    return logging.StreamHandler()


def configure_logging(config: RuntimeConfig) -> None:
    """Configure root logging from the runtime config."""

    level_name = "DEBUG" if config.debug_logging else "INFO"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": "sensorhub.config.logging.StructuredLogFormatter",
                }
            },
            "handlers": {
                "sensorhub": {
                    "()": _build_handler,
                    "level": level_name,
                    "formatter": "structured",
                }
            },
            "root": {
                "level": level_name,
                "handlers": ["sensorhub"],
            },
        }
    )

    logging.getLogger("sensorhub").info("Logging configured at level %s", level_name)


__all__ = ["StructuredLogFormatter", "configure_logging"]
