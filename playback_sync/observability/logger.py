"""Structured JSON logger.

Outputs one JSON object per line with severity, timestamp, and message
fields, plus the synchronization-specific extras passed via `extra`.
"""

import json
import logging
import sys
from datetime import UTC, datetime

EXTRA_FIELDS = (
    "component",
    "word",
    "operation",
    "duration_seconds",
    "sample_count",
    "error",
)


class StructuredJsonFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    SEVERITY_MAP: dict[int, str] = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARNING",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            JSON string with severity, timestamp, logger, message, and extras.
        """
        log_entry: dict[str, object] = {
            "timestamp": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "severity": self.SEVERITY_MAP.get(record.levelno, "DEFAULT"),
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])

        return json.dumps(log_entry, ensure_ascii=False)


def _json_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    return handler


def setup_logging(level: str | int = logging.INFO) -> None:
    """Install the JSON formatter on the root logger.

    Replaces existing root handlers so repeated calls do not duplicate output.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.addHandler(_json_handler())


def get_logger(name: str) -> logging.Logger:
    """Return a DEBUG-level logger with its own JSON handler.

    Meant for scripts that log without calling setup_logging() first.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(_json_handler())
        logger.setLevel(logging.DEBUG)
    return logger
