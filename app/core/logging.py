"""Centralized logging configuration.

Pipeline code attaches context through ``extra=`` (request id from the
HTTP middleware, criterion id from the orchestrator); both formatters
below surface those fields when present.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from app.core.config import settings

CONTEXT_FIELDS = ("request_id", "criterion_id", "website_url")

_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter for production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_data["exception"] = self.formatException(record.exc_info)
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                log_data[name] = value
        return json.dumps(log_data, ensure_ascii=False)


class ContextFormatter(logging.Formatter):
    """Human-readable formatter that appends context fields as key=value."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = " ".join(
            f"{name}={getattr(record, name)}" for name in CONTEXT_FIELDS if getattr(record, name, None)
        )
        return f"{line} [{context}]" if context else line


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Configure the root logger. Arguments override LOG_LEVEL / LOG_JSON."""
    level_name = (level or settings.log_level).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    use_json = settings.log_json if json_output is None else json_output

    root = logging.getLogger()
    root.setLevel(numeric_level)

    # Remove existing handlers
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            ContextFormatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root.addHandler(handler)

    # Suppress noisy libraries
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
