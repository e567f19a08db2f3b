"""
Structured logging for Bastion.

Application code logs through ``get_logger`` and passes structured fields
as ``data=``. Security events go through ``log_security_event`` on the
dedicated ``bastion.security`` logger so they can be routed (and
persisted to the audit trail) separately from operational logs.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Request-scoped fields bound by RequestContextMiddleware
request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})

SECURITY_LOGGER = "bastion.security"

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "sqlalchemy.engine")


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event_type = getattr(record, "event_type", None)
        if event_type:
            entry["event_type"] = event_type

        ctx = request_context.get()
        if ctx:
            entry["request_id"] = ctx.get("request_id")
            entry["path"] = ctx.get("path")
            entry["peer"] = ctx.get("peer")

        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored single-line output for local runs."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        request_id = (request_context.get().get("request_id") or "-")[:8]
        parts = [
            _timestamp(record).strftime("%Y-%m-%d %H:%M:%S"),
            f"{color}{record.levelname:8}{self.RESET}",
            request_id,
            record.name,
            record.getMessage(),
        ]
        data = getattr(record, "data", None)
        if data:
            parts.append(" ".join(f"{k}={v}" for k, v in data.items()))
        line = " | ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """Adapter that moves the ``data=`` keyword into the record."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(kwargs.get("extra") or {})
        if "data" in kwargs:
            extra["data"] = kwargs.pop("data")
        kwargs["extra"] = extra
        return msg, kwargs


_loggers: Dict[str, ContextLogger] = {}


def get_logger(name: str) -> ContextLogger:
    if name not in _loggers:
        _loggers[name] = ContextLogger(logging.getLogger(name), {})
    return _loggers[name]


def log_security_event(
    event_type: str,
    message: str,
    ip: Optional[str] = None,
    level: int = logging.WARNING,
    **context: Any,
) -> None:
    """Emit a security event on the dedicated security logger.

    Events carry a stable ``event_type`` (e.g. ``IP_AUTO_BLACKLISTED``) so the
    audit handler and log pipelines can index them without parsing messages.
    """
    data = dict(context)
    if ip is not None:
        data["ip"] = ip
    get_logger(SECURITY_LOGGER).log(
        level,
        f"{event_type}: {message}",
        data=data,
        extra={"event_type": event_type, "event_message": message},
    )


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Install console (and optional JSON file) handlers on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(StructuredFormatter() if json_output else ConsoleFormatter())
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        root.addHandler(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
