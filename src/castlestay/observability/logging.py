"""JSON log lines for the booking core.

Every line carries the correlation ID bound for the current request or
sweep, plus whatever the caller passed as ``extra={"extra_fields": ...}``
(already run through ``safe_log_context``). CRITICAL lines are tagged
``alert: true`` so paid-but-not-booked escalations can be routed to a
log-based alert.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id

SERVICE_NAME = "castlestay"


def _log_level() -> int:
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "severity": record.levelname,
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }

        cid = get_correlation_id()
        if cid:
            entry["correlationId"] = cid

        if record.exc_info and record.exc_info[0] is not None:
            entry["error_class"] = record.exc_info[0].__name__
            entry["exception"] = self.formatException(record.exc_info)

        if record.levelno >= logging.CRITICAL:
            entry["alert"] = True

        fields = getattr(record, "extra_fields", None)
        if fields:
            entry.update(fields)

        return json.dumps(entry, default=str)


def get_logger(name: str) -> logging.Logger:
    """Logger writing JSON lines to stdout; level from LOG_LEVEL."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(_log_level())
    logger.propagate = False
    return logger
