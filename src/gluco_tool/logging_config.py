"""Configuración de logging (JSON o texto) con el perfil activo en contexto."""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

# Active profile, stamped on every record while a session is open.
profile_id_ctx: ContextVar[str | None] = ContextVar("profile_id", default=None)

SERVICE_NAME = "gluco-tool"


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: timestamp, level, service, message, logger, profile_id (when a
    session is open), any extra fields, exception and, for errors, the
    source location.
    """

    def __init__(self, service_name: str = SERVICE_NAME) -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "message": record.getMessage(),
            "logger": record.name,
        }
        profile_id = profile_id_ctx.get()
        if profile_id:
            log_data["profile_id"] = profile_id
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if record.levelno >= logging.ERROR:
            log_data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable: timestamp - level - [profile] - message key=value."""

    def __init__(self, service_name: str = SERVICE_NAME) -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        profile_id = profile_id_ctx.get() or "-"
        base_msg = (
            f"{timestamp} - {self.service_name} - {record.levelname} - "
            f"[{profile_id}] - {record.getMessage()}"
        )
        extra = getattr(record, "extra_fields", None)
        if extra:
            base_msg += " " + " ".join(f"{k}={v}" for k, v in extra.items())
        if record.exc_info:
            base_msg += f"\n{self.formatException(record.exc_info)}"
        return base_msg


def setup_logging(
    log_format: str = "text",
    log_level: str = "INFO",
    service_name: str = SERVICE_NAME,
) -> None:
    """Configure the root logger.

    Args:
        log_format: 'json' for structured logging, 'text' for human-readable.
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        service_name: Name included in every record.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if log_format.lower() == "json":
        handler.setFormatter(JsonFormatter(service_name=service_name))
    else:
        handler.setFormatter(TextFormatter(service_name=service_name))
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)
    logging.getLogger("kivy").setLevel(logging.WARNING)


class StructuredLogger:
    """Logger wrapper that takes extra fields as keyword arguments."""

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    def _log(self, level: int, msg: str, extra_fields: dict[str, Any]) -> None:
        record_extra = {"extra_fields": extra_fields} if extra_fields else {}
        self._logger.log(level, msg, extra=record_extra)

    def debug(self, msg: str, **extra_fields: Any) -> None:
        self._log(logging.DEBUG, msg, extra_fields)

    def info(self, msg: str, **extra_fields: Any) -> None:
        self._log(logging.INFO, msg, extra_fields)

    def warning(self, msg: str, **extra_fields: Any) -> None:
        self._log(logging.WARNING, msg, extra_fields)

    def error(self, msg: str, **extra_fields: Any) -> None:
        self._log(logging.ERROR, msg, extra_fields)

    def exception(self, msg: str, **extra_fields: Any) -> None:
        """Log at ERROR with the current traceback."""
        record_extra = {"extra_fields": extra_fields} if extra_fields else {}
        self._logger.exception(msg, extra=record_extra)


def get_logger(name: str) -> StructuredLogger:
    """Structured logger for ``name`` (typically ``__name__``)."""
    return StructuredLogger(name)
