"""Logging for the Energia agent API.

Production emits one JSON object per line. With ``DEBUG=true`` a compact
console format is used instead. Both read structured data from
``extra={"context": {...}}``, and ``contact_id`` is lifted out of the context
so every line of a conversation can be filtered by the WhatsApp number.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

LOGGER_PREFIX = "energia"
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _split_context(record: logging.LogRecord) -> tuple[Optional[str], dict[str, Any]]:
    context = dict(getattr(record, "context", None) or {})
    contact_id = context.pop("contact_id", None)
    return contact_id, context


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        contact_id, context = _split_context(record)
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if contact_id:
            entry["contact_id"] = contact_id
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """``12:00:01 INFO  energia.orchestrator [5567...] Turn completed {...}``"""

    def format(self, record: logging.LogRecord) -> str:
        contact_id, context = _split_context(record)
        when = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{when} {record.levelname:<5} {record.name}"
        if contact_id:
            line += f" [{contact_id}]"
        line += f" {record.getMessage()}"
        if context:
            line += f" {json.dumps(context, ensure_ascii=False, default=str)}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO", *, json_output: bool = True) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_output else ConsoleFormatter())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


class ContactLoggerAdapter(logging.LoggerAdapter):
    """Carries the turn's contact on every record; ``context=`` adds per-call fields."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = {**(self.extra or {}), **(kwargs.pop("context", None) or {})}
        if context:
            extra = dict(kwargs.get("extra") or {})
            extra["context"] = {**extra.get("context", {}), **context}
            kwargs["extra"] = extra
        return msg, kwargs
