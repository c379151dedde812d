"""
Structured logging for the TradeSphere pricing service.

JSON lines in production, a plain text format when ``LOG_FORMAT=text``.
Pricing code attaches structured fields through ``extra=`` (see
EXTRA_FIELDS); the request id set by the HTTP middleware is stamped onto
every record logged while that request is being served.
"""
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Request id of the HTTP request currently being served, if any
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Structured fields callers pass through ``extra=``
EXTRA_FIELDS = (
    "event",
    "company_id",
    "service_name",
    "source",
    "duration_ms",
    "request_id",
    "http_method",
    "http_path",
    "http_status",
)

TEXT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"

NOISY_LOGGERS = ("uvicorn.access", "asyncpg", "sqlalchemy.engine", "httpx", "httpcore")


class RequestContextFilter(logging.Filter):
    """Copy the active request id onto records that don't already carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            request_id = request_id_var.get()
            if request_id is not None:
                record.request_id = request_id
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update({name: getattr(record, name) for name in EXTRA_FIELDS if hasattr(record, name)})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True) -> logging.Handler:
    """Install a single stdout handler on the root logger and return it."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT))
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers = [handler]

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler
