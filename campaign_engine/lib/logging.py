"""
Logging setup for the campaign engine.

Log lines are JSON by default (CAMPAIGN_ENGINE_LOG_JSON). Each API request
and each scheduler tick sets a correlation ID that is stamped on every line
logged while it runs, so one campaign action can be followed across modules.
"""
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from campaign_engine.lib.settings import settings


correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord carries; anything else came in through `extra`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "extra_fields"}

_QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "sqlalchemy.engine")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the correlation ID and any extra context."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = correlation_id_var.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        entry.update((key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRS)
        entry.update(getattr(record, "extra_fields", {}))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Route every logger to stdout at `level`, as JSON or plain text."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(
        JSONFormatter() if json_format
        else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def log_with_context(logger: logging.Logger, level: str, message: str, **extra_fields: Any) -> None:
    """
    Log `message` with structured context fields.

    The fields end up as top-level keys of the JSON line and are available
    on the record as `extra_fields`.
    """
    getattr(logger, level.lower())(message, extra={"extra_fields": extra_fields})


setup_logging(
    level="DEBUG" if settings.debug else "INFO",
    json_format=settings.log_json,
)
