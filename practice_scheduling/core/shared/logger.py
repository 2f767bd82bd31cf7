"""
Shared Logger

Root logger setup for the scheduling service. Modules only call
``logging.getLogger(__name__)``; handlers and formats are chosen here once,
from LOG_LEVEL, LOG_FORMAT and LOG_FILE.
"""

import json
import logging
import sys
from datetime import UTC, datetime

LOG_LINE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Held at WARNING or above regardless of LOG_LEVEL
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler")

ANSI_RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers and LOG_FILE."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id is not None:
            payload["correlation_id"] = correlation_id
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ColoredFormatter(logging.Formatter):
    """Console formatter that tints the level name."""

    def format(self, record: logging.LogRecord) -> str:
        # levelname is restored so other handlers see the plain value
        plain = record.levelname
        record.levelname = f"{LEVEL_COLORS.get(record.levelno, ANSI_RESET)}{plain}{ANSI_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def build_formatter(format_type: str) -> logging.Formatter:
    if format_type == "json":
        return JSONFormatter()
    formatter_cls = ColoredFormatter if format_type == "colored" else logging.Formatter
    return formatter_cls(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT)


def configure_logging(level: str = "INFO", format_type: str = "colored", log_file: str | None = None) -> None:
    """
    Replace the root handlers with a stdout handler and an optional file handler.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        format_type: 'colored', 'json' or 'plain' for the console
        log_file: Path of a JSON-lines log file
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    handlers[0].setFormatter(build_formatter(format_type))
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric_level)
    for handler in handlers:
        handler.setLevel(numeric_level)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
