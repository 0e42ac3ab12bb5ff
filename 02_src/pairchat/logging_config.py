"""JSON logging for pairchat.

Log calls pass participant and conversation ids through
``extra={"context": {...}}``. The formatter lifts the well-known ids to
top-level keys so log lines can be filtered per participant or
conversation without parsing the message text.
"""

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path

from .config import DEFAULT_LOG_PATH

# Context keys promoted to top-level fields of each JSON line.
ID_FIELDS = ("participant_id", "conversation_id", "partner_id")

# Third-party loggers that are noisy at INFO.
QUIET_LOGGERS = ("aiosqlite", "httpx", "httpcore", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with ids from the log context on top."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        context = dict(getattr(record, "context", None) or {})
        for key in ID_FIELDS:
            if key in context:
                entry[key] = context.pop(key)
        if context:
            entry["context"] = context

        if record.levelno >= logging.WARNING:
            entry["where"] = f"{record.module}.{record.funcName}:{record.lineno}"

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(log_level: str | None = None, log_file: str | None = None) -> None:
    """Configure root logging: JSON to stdout and to a rotating pairchat.log.

    The level comes from LOG_LEVEL when not given.
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_path = Path(log_file) if log_file else DEFAULT_LOG_PATH
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JSONFormatter},
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                    "stream": "ext://sys.stdout",
                },
                "file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "formatter": "json",
                    "filename": str(log_path),
                    "maxBytes": 5 * 1024 * 1024,
                    "backupCount": 3,
                    "encoding": "utf-8",
                },
            },
            "loggers": {
                name: {"level": "WARNING"} for name in QUIET_LOGGERS
            },
            "root": {"level": level, "handlers": ["stdout", "file"]},
        }
    )


def get_logger(name: str) -> logging.Logger:
    """Module logger; call with __name__."""
    return logging.getLogger(name)
