"""
Core Module - Logging Setup.

Structured logging for the command-line entry points. Library
code only calls logging.getLogger(__name__); handlers are
installed here, once, by the process that owns stdout.

JSON output is one object per line:

    {"timestamp": "...", "level": "INFO", "logger": "learning.repository",
     "message": "Pattern sync for acct-1: {...}"}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict


TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


class JsonFormatter(logging.Formatter):
    """Serializes each record, so quotes in messages stay valid JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", log_format: str = "json") -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_format: "json" or "text"
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if log_format == "json" else logging.Formatter(TEXT_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    if log_level > logging.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)


__all__ = ["JsonFormatter", "setup_logging"]
