"""Logging setup for ccstream.

Console output goes through Rich. An optional rotating log file receives
either JSON lines or plain text. Every record carries the correlation id of
the request or operation that produced it, so the lines of one stream or one
torrent add can be picked out of interleaved output.
"""

from __future__ import annotations

import json
import logging
import logging.config
import time
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ccstream.utils.exceptions import CCStreamError
from ccstream.utils.rich_logging import FileFormatter, create_rich_handler

if TYPE_CHECKING:  # pragma: no cover
    from ccstream.models import ObservabilityConfig

correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

ROOT_LOGGER_NAME = "ccstream"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Attributes every LogRecord has; anything else on a record came in via ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
    "correlation_id",
}


class CorrelationFilter(logging.Filter):
    """Stamps the current correlation id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "-"
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with ``extra`` fields inlined."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": record.created,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            "correlation_id": getattr(record, "correlation_id", None),
        }
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS:
                entry[key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _file_handler(config: ObservabilityConfig, level: str) -> dict[str, Any]:
    log_path = Path(config.log_file or "")
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "json" if config.structured_logging else "text",
        "filters": ["correlation"],
        "filename": str(log_path),
        "maxBytes": LOG_FILE_MAX_BYTES,
        "backupCount": LOG_FILE_BACKUPS,
        "encoding": "utf-8",
    }


def setup_logging(config: ObservabilityConfig) -> None:
    """Configure the ``ccstream`` logger tree from ``config``.

    Safe to call again: a later call replaces the handlers of an earlier one.
    """
    level = config.log_level.value
    handlers: dict[str, Any] = {}
    if config.log_file:
        handlers["file"] = _file_handler(config, level)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": StructuredFormatter},
                "text": {
                    "()": FileFormatter,
                    "format": "%(asctime)s %(levelname)-8s [%(correlation_id)s] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "filters": {"correlation": {"()": CorrelationFilter}},
            "handlers": handlers,
            "loggers": {
                ROOT_LOGGER_NAME: {"level": level, "handlers": list(handlers), "propagate": False},
                # One line per HTTP request drowns out the stream logs
                "aiohttp.access": {"level": "WARNING"},
            },
            "root": {"level": level, "handlers": []},
        }
    )

    console = create_rich_handler(level=level)
    console.addFilter(CorrelationFilter())
    logging.getLogger().addHandler(console)
    logging.getLogger(ROOT_LOGGER_NAME).addHandler(console)

    if config.log_correlation_id:
        set_correlation_id()


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` under the ``ccstream`` namespace."""
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_correlation_id(corr_id: str | None = None) -> str:
    """Set (or generate) the correlation id for the current task."""
    corr_id = corr_id or uuid.uuid4().hex[:12]
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str | None:
    return correlation_id.get()


class LoggingContext:
    """Logs start, completion or failure and duration of a named operation.

    Lifecycle operations are logged at INFO; everything else at DEBUG unless
    it runs longer than ``slow_threshold`` seconds.
    """

    INFO_OPERATIONS = frozenset({"torrent_add", "torrent_remove", "server_start", "server_stop"})

    def __init__(
        self,
        operation: str,
        log_level: int | None = None,
        slow_threshold: float = 1.0,
        logger: logging.Logger | None = None,
        **fields: Any,
    ):
        self.operation = operation
        self.fields = fields
        self.logger = logger or get_logger(__name__)
        self.log_level = log_level
        self.slow_threshold = slow_threshold
        self._started = 0.0

    def _level(self, duration: float = 0.0) -> int:
        if self.log_level is not None:
            return self.log_level
        if self.operation in self.INFO_OPERATIONS or duration >= self.slow_threshold:
            return logging.INFO
        return logging.DEBUG

    def __enter__(self) -> LoggingContext:
        self._started = time.monotonic()
        set_correlation_id()
        self.logger.log(self._level(), "Starting %s", self.operation, extra=self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        duration = time.monotonic() - self._started
        if exc_type is None:
            self.logger.log(
                self._level(duration),
                "Completed %s in %.3fs",
                self.operation,
                duration,
                extra=self.fields,
            )
        else:
            self.logger.warning(
                "Failed %s in %.3fs: %s", self.operation, duration, exc_val, extra=self.fields
            )
        return False


def log_exception(logger: logging.Logger, exc: BaseException, context: str = "") -> None:
    """Log ``exc`` at ERROR with its traceback and, for ccstream errors, its details."""
    if isinstance(exc, CCStreamError):
        logger.error("%s: %s", context, exc.message, extra={"details": exc.details}, exc_info=exc)
    else:
        logger.error("%s: %s", context, exc, exc_info=exc)
