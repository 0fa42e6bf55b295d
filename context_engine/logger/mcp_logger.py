"""
Logging setup for the MCP gateway.

All records go to stderr: in stdio mode stdout carries the MCP protocol and
must never receive log output. The level comes from MCP_LOG_LEVEL and
MCP_STRUCTURED_LOGS=true switches to one JSON object per line.
"""

import json
import logging
import os
import sys
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_LEVELS: dict[str, int] = {
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "TRACE": TRACE,
}

ROOT_LOGGER_NAME = "context_engine"

# Attributes every LogRecord has; anything else was passed through ``extra=``.
_RESERVED_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Collect the ``extra=`` fields attached to a record."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_RECORD_ATTRS and not key.startswith("_")
    }


def _timestamp(record: logging.LogRecord) -> str:
    created = datetime.fromtimestamp(record.created, tz=timezone.utc)
    return created.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class PlainFormatter(logging.Formatter):
    """``[timestamp] LEVEL: message {context}``"""

    def format(self, record: logging.LogRecord) -> str:
        context = record_context(record)
        context_str = f" {json.dumps(context, default=str)}" if context else ""
        line = f"[{_timestamp(record)}] {record.levelname}: {record.getMessage()}{context_str}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class StructuredFormatter(logging.Formatter):
    """One JSON document per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _timestamp(record),
            "level": record.levelname.lower(),
            "message": record.getMessage(),
        }
        context = record_context(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def resolve_log_level(value: str | None) -> int:
    if not value:
        return logging.INFO
    return LOG_LEVELS.get(value.strip().upper(), logging.INFO)


def configure_logging(env: Mapping[str, str] | None = None) -> logging.Logger:
    """Install a single stderr handler on the ``context_engine`` logger."""
    environ = os.environ if env is None else env
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(resolve_log_level(environ.get("MCP_LOG_LEVEL")))

    structured = environ.get("MCP_STRUCTURED_LOGS") == "true"
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter() if structured else PlainFormatter())

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.propagate = False
    return logger
