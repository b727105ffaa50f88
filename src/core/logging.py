"""Structured logging module for hybrid-search-service.

Provides:
- JSONFormatter emitting one JSON object per line, with search fields
  (source, state, latency_ms, ...) lifted from ``extra=``
- CorrelationIdFilter tagging every record with the active query id
- query_scope() binding a query id for the duration of one search
- Log level configurable via HYBRID_SEARCH_LOG_LEVEL env var

Module loggers are plain ``logging.getLogger(__name__)`` and live under the
``src`` hierarchy, which setup_structured_logging() configures.
"""

import json
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

_SERVICE_NAME = "hybrid-search"
_ROOT_LOGGER = "src"
_NO_CORRELATION = "-"

# Search-specific attributes copied from ``extra=`` into the JSON line
_SEARCH_FIELDS = (
    "source",
    "sources",
    "state",
    "fusion_mode",
    "reranked",
    "result_count",
    "latency_ms",
)

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Get the current correlation ID from context."""
    return _correlation_id.get()


@contextmanager
def query_scope(query_id: str) -> Iterator[str]:
    """Bind ``query_id`` as the correlation id until the block exits.

    The previous id (for example an HTTP request id) is restored on exit,
    so nested scopes and concurrent queries never see each other's id.
    """
    token = _correlation_id.set(query_id)
    try:
        yield query_id
    finally:
        _correlation_id.reset(token)


class JSONFormatter(logging.Formatter):
    """JSON log formatter with standard and search fields."""

    def __init__(self, service_name: str = _SERVICE_NAME, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "correlation_id": getattr(record, "correlation_id", _NO_CORRELATION),
            "module": record.module,
            "message": record.getMessage(),
        }
        for field in _SEARCH_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class CorrelationIdFilter(logging.Filter):
    """Filter that adds the active query id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or _NO_CORRELATION
        return True


def get_log_level_from_env(service_prefix: str = "HYBRID_SEARCH") -> int:
    """Get log level from HYBRID_SEARCH_LOG_LEVEL; unknown names mean INFO."""
    level_str = os.environ.get(f"{service_prefix}_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(level_str)
    return level if isinstance(level, int) else logging.INFO


def _json_handler(handler: logging.Handler, service_name: str) -> logging.Handler:
    handler.setFormatter(JSONFormatter(service_name=service_name))
    handler.addFilter(CorrelationIdFilter())
    return handler


def create_file_handler(
    log_file_path: str,
    service_name: str = _SERVICE_NAME,
    max_bytes: int = 10_485_760,
    backup_count: int = 5,
) -> RotatingFileHandler:
    """Create a rotating file handler for JSON logs."""
    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=log_file_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    _json_handler(handler, service_name)
    return handler


def setup_structured_logging(
    logger_name: str = _ROOT_LOGGER,
    service_name: str = _SERVICE_NAME,
    log_file_path: str | None = None,
    log_level: int | None = None,
) -> logging.Logger:
    """Attach JSON console (and optional file) handlers to the package logger."""
    if log_level is None:
        log_level = get_log_level_from_env()

    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.addHandler(_json_handler(logging.StreamHandler(sys.stdout), service_name))

    if log_file_path:
        try:
            logger.addHandler(create_file_handler(log_file_path, service_name))
        except PermissionError:
            logger.warning("Cannot write to %s, file logging disabled", log_file_path)

    logger.propagate = False
    return logger
