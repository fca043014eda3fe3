"""Structured key=value logging for the DesignKit engine.

Log lines carry the project (and phase, where one is involved) they concern,
so one session's history can be grepped out of a shared service log:

    timestamp=... level=INFO logger=designkit.core.session project_id=p1 message="Adopted remote snapshot" version=3
"""

import logging
import sys
from enum import Enum
from typing import Any

from designkit.core.config import get_settings

# Context fields rendered ahead of the message, in this order
CONTEXT_FIELDS = ("project_id", "phase_id")


def _render(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    text = str(value)
    if not text or any(ch.isspace() for ch in text) or '"' in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


class StructuredFormatter(logging.Formatter):
    """Render records as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
        }
        for name in CONTEXT_FIELDS:
            if getattr(record, name, None) is not None:
                fields[name] = getattr(record, name)
        fields["message"] = record.getMessage()
        fields.update(sorted(getattr(record, "extra_data", {}).items()))

        line = " ".join(f"{k}={_render(v)}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def level_for_env() -> int:
    """DEBUG in dev, INFO elsewhere; ``LOG_LEVEL`` overrides both."""
    settings = get_settings()
    if settings.LOG_LEVEL:
        return logging.getLevelName(settings.LOG_LEVEL.upper())
    return logging.DEBUG if settings.DESIGNKIT_ENV == "dev" else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger writing structured lines to stdout.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(level_for_env())

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with project/phase context plus free-form fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: ``project_id``/``phase_id`` and any other fields to append
    """
    extra: dict[str, Any] = {name: kwargs.pop(name) for name in CONTEXT_FIELDS if name in kwargs}
    extra["extra_data"] = kwargs
    logger.log(level, msg, extra=extra)
