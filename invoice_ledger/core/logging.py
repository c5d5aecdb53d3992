"""
Logging configuration for the ledger service.

- Console handler with coloured, human-readable lines for local work.
- Rotating JSON file (``logs/invoice-ledger.log``) for log aggregation.
- Rotating error-only JSON file (``logs/invoice-ledger-error.log``).
- ``DEBUG=true`` switches everything to DEBUG and turns on SQL echo.

Call ``setup_logging()`` once at startup; modules only ever do
``logging.getLogger(__name__)``.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from invoice_ledger.core.config import settings

LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "logs")
LOG_FILE = "invoice-ledger.log"
ERROR_LOG_FILE = "invoice-ledger-error.log"

# Set by RequestIDMiddleware for the duration of each HTTP request.
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Extra attributes copied into the JSON line when a caller passes them via
# ``logger.info(..., extra={...})``.
_EXTRA_FIELDS = (
    "status_code",
    "method",
    "path",
    "elapsed_ms",
    "client_ip",
    "invoice_id",
    "investment_id",
    "address",
)


class RequestIDFilter(logging.Filter):
    """Stamp the current request id (if any) onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_ctx.get()
        return True


class JSONFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects::

        {"timestamp": "2026-10-19T10:30:00.123+00:00", "level": "INFO",
         "logger": "invoice_ledger.services.ledger_service",
         "message": "Invoice ... funded by ...", "function": "invest", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = getattr(record, "request_id", None)
        if request_id:
            log_entry["request_id"] = request_id

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val

        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter with ANSI-coloured level names."""

    COLOURS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self.COLOURS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S"
        )

        request_id = getattr(record, "request_id", None)
        rid_str = f" [{request_id[:8]}]" if request_id else ""

        base = (
            f"{timestamp} | {colour}{record.levelname:<8}{self.RESET} | "
            f"{record.name}{rid_str} | {record.getMessage()}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def setup_logging() -> None:
    """
    Configure the root logger with console + rotating file handlers.

    Idempotent: does nothing when the root logger already has handlers.
    """
    root_logger = logging.getLogger()

    if root_logger.handlers:
        return

    level = (
        logging.DEBUG
        if settings.DEBUG
        else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    )
    root_logger.setLevel(level)
    request_filter = RequestIDFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ConsoleFormatter())
    console_handler.addFilter(request_filter)
    root_logger.addHandler(console_handler)

    os.makedirs(LOG_DIR, exist_ok=True)
    file_handler = RotatingFileHandler(
        filename=os.path.join(LOG_DIR, LOG_FILE),
        maxBytes=settings.LOG_FILE_MAX_BYTES,
        backupCount=settings.LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(JSONFormatter())
    file_handler.addFilter(request_filter)
    root_logger.addHandler(file_handler)

    error_handler = RotatingFileHandler(
        filename=os.path.join(LOG_DIR, ERROR_LOG_FILE),
        maxBytes=settings.LOG_FILE_MAX_BYTES,
        backupCount=settings.LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(JSONFormatter())
    error_handler.addFilter(request_filter)
    root_logger.addHandler(error_handler)

    # ── Quieten third-party loggers ──
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if settings.DEBUG else logging.WARNING
    )

    root_logger.info(
        "Logging initialized: level=%s, file=%s, max_size=%s MB, backups=%d",
        logging.getLevelName(level),
        os.path.join(LOG_DIR, LOG_FILE),
        settings.LOG_FILE_MAX_BYTES // (1024 * 1024),
        settings.LOG_FILE_BACKUP_COUNT,
    )
