"""
Structured logging for the order lifecycle.

Production writes one JSON object per line; development writes a compact
coloured line. Keyword context passed to the logger ends up in ``data``,
except the entity keys below, which are lifted to the top level so log
queries can filter by order, session or restaurant directly.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from tabledesk_shared.config.settings import settings

# Keyword context promoted out of "data" in JSON records
ENTITY_KEYS = ("restaurant_id", "order_id", "session_id", "table_id", "actor_id")


class StructuredFormatter(logging.Formatter):
    """JSON formatter for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", "-")
        if request_id != "-":
            entry["request_id"] = request_id

        data = dict(getattr(record, "extra_data", None) or {})
        for key in ENTITY_KEYS:
            if data.get(key) is not None:
                entry[key] = data.pop(key)
        if data:
            entry["data"] = data

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if settings.debug:
            entry["at"] = f"{record.pathname}:{record.lineno}"

        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Readable single-line output for a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{clock} {color}{record.levelname[:4]}{self.RESET} {record.name} {record.getMessage()}"

        request_id = getattr(record, "request_id", "-")
        if request_id != "-":
            line += f" req={request_id[:8]}"

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            line += " " + " ".join(f"{key}={value}" for key, value in extra_data.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """
    Logger that accepts keyword context:

        logger.info("Order created", order_id=12, total="31.50")
    """

    def _log(  # type: ignore[override]
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **context: Any,
    ) -> None:
        extra = dict(extra or {})
        extra["extra_data"] = context or None
        super()._log(
            level, msg, args,
            exc_info=exc_info, extra=extra, stack_info=stack_info, stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)

# Libraries that are too chatty at INFO
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine")


def setup_logging() -> None:
    """Install the stdout handler on the root logger. Safe to call more than once."""
    from tabledesk_shared.infrastructure.correlation import CorrelationIdFilter

    level = logging.DEBUG if settings.debug else logging.INFO
    production = settings.environment == "production"

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(StructuredFormatter() if production else DevelopmentFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """
    Logger for a module:

        logger = get_logger(__name__)
        logger.info("Session opened", session_id=7, table_id=3)
    """
    return logging.getLogger(name)  # type: ignore[return-value]


api_logger = get_logger("tabledesk.api")
cli_logger = get_logger("tabledesk.cli")
