"""
Structured Logging Configuration Module

Ledger operations log through the standard ``logging`` package with a few
structured attributes (action, resource, extra) attached to each record.
A correlation id bound with ``correlation_scope`` is stamped on every record
emitted inside the scope, so all lines belonging to one HTTP request can be
grouped.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional
import json
import logging
import uuid


# Record attributes rendered as top-level JSON keys when present
STRUCTURED_FIELDS = ("correlation_id", "action", "resource", "extra")

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def current_correlation_id() -> Optional[str]:
    return _correlation_id.get()


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind a correlation id for everything logged inside the block

    Args:
        correlation_id: Id to bind, a new uuid4 if omitted

    Yields:
        The bound id
    """
    value = correlation_id or str(uuid.uuid4())
    token = _correlation_id.set(value)
    try:
        yield value
    finally:
        _correlation_id.reset(token)


class CorrelationFilter(logging.Filter):
    """Stamps the bound correlation id on records that carry none"""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = _correlation_id.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, omitting unset structured fields"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
        }
        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _build_formatter(fmt: str) -> logging.Formatter:
    fmt = fmt.lower()
    if fmt == "json":
        return JSONFormatter()
    if fmt == "text":
        return logging.Formatter(TEXT_FORMAT)
    raise ValueError(f"Unknown log format: {fmt}")


def setup_logging(level: str = "INFO", logger_name: str = "token_ledger",
                  fmt: str = "json") -> logging.Logger:
    """
    Configure the application logger with a single stream handler

    Calling it again replaces the previous handler, so the last call wins.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Logger to configure; child loggers propagate to it
        fmt: "json" for structured lines, "text" for plain ones

    Returns:
        The configured logger

    Raises:
        ValueError: If level or fmt is not recognised
    """
    levelno = logging.getLevelName(level.upper())
    if not isinstance(levelno, int):
        raise ValueError(f"Unknown log level: {level}")

    handler = logging.StreamHandler()
    handler.setFormatter(_build_formatter(fmt))
    handler.addFilter(CorrelationFilter())

    logger = logging.getLogger(logger_name)
    for old in list(logger.handlers):
        logger.removeHandler(old)
    logger.addHandler(handler)
    logger.setLevel(levelno)
    logger.propagate = False
    return logger


def get_logger(name: str = "token_ledger") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               action: Optional[str] = None, resource: Optional[str] = None,
               correlation_id: Optional[str] = None,
               extra: Optional[dict] = None):
    """
    Log message with structured fields attached to the record

    Fields left as None are not set, and an explicit correlation_id takes
    precedence over the one bound by correlation_scope.
    """
    fields = {
        "action": action,
        "resource": resource,
        "correlation_id": correlation_id or _correlation_id.get(),
        "extra": extra or None,
    }
    logger.log(
        logging.getLevelName(level.upper()), message,
        extra={k: v for k, v in fields.items() if v is not None},
        stacklevel=2
    )
