"""Logging setup: JSON output for deployments, plain text for local dev.

Every record carries the current request id, set by the request-context
middleware registered in ``intake.api``.
"""
from __future__ import annotations

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from .config import settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


class ContextFilter(logging.Filter):
    """Inject request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON objects."""

    _SKIP_FIELDS = {
        "args", "created", "exc_info", "exc_text", "filename",
        "funcName", "levelname", "levelno", "lineno", "module",
        "msecs", "msg", "name", "pathname", "process", "processName",
        "relativeCreated", "stack_info", "thread", "threadName",
        "taskName", "request_id",
    }

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }

        if record.exc_info and record.exc_info[1] is not None:
            entry["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        # Anything passed through ``extra=`` rides along
        for key, value in record.__dict__.items():
            if key in self._SKIP_FIELDS or key in entry:
                continue
            try:
                json.dumps(value)
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)

        return json.dumps(entry, default=str)


class SimpleFormatter(logging.Formatter):
    """Human-readable format for local development."""

    def format(self, record: logging.LogRecord) -> str:
        req_id = getattr(record, "request_id", None)
        suffix = f" [request_id={req_id}]" if req_id else ""

        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{timestamp} {record.levelname:<8} {record.name} - {record.getMessage()}{suffix}"

        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + "".join(traceback.format_exception(*record.exc_info))

        return line


def setup_logging() -> None:
    """Configure root logging from ``settings.logging``."""
    level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if settings.logging.format == "simple":
        handler.setFormatter(SimpleFormatter())
    else:
        handler.setFormatter(JsonFormatter())
    handler.addFilter(ContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
