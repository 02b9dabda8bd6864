"""
Logging setup for the funnel core.

Log calls pass request context through ``extra=``; both formatters render
the keys in ``CONTEXT_FIELDS``. ``FunnelService.from_config`` installs the
handler from ``TRIAL_FUNNEL_LOG_LEVEL`` and ``TRIAL_FUNNEL_LOG_JSON``.
"""

import json
import logging
import sys
from datetime import datetime, timezone

PACKAGE_LOGGER = "trial_funnel"

# request_id / status / target_status: single mutations and archive writes
# success_count / total: batch summaries
CONTEXT_FIELDS = ("request_id", "status", "target_status", "success_count", "total")


def log_context(record: logging.LogRecord) -> dict:
    context = {}
    for key in CONTEXT_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            context[key] = value
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(log_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class ReadableFormatter(logging.Formatter):
    """Colored single-line output with the request context appended."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        stamp = datetime.now().strftime("%H:%M:%S")
        line = f"{color}{stamp} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"
        context = log_context(record)
        if context:
            line += " [" + " ".join(f"{key}={value}" for key, value in context.items()) + "]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(level_name: str = "INFO", json_format: bool = False) -> logging.Logger:
    """Install one stderr handler on the package logger and return it.

    Calling it again replaces the handler instead of adding a second one.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else ReadableFormatter())
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)

    # one line per HTTP call is noise next to the funnel's own messages
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return logger
