"""Logging configuration for the uploader.

This module sets up Python's standard logging with a plain, structured or
JSON formatter. Everything is written to stderr so the in-place progress
line on stdout is never interleaved with log output.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from throttleup.app.core.config import get_settings

# Transfer details passed via ``extra=``; ContextFilter defaults them to None
CONTEXT_FIELDS = (
    "url",
    "method",
    "status_code",
    "bytes_so_far",
    "total_bytes",
    "content_length",
    "rate_bps",
)

# Attributes every LogRecord carries, never reported as extras
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Context fields that are set become top-level keys; any other attribute
    passed through ``extra=`` is grouped under ``"extra"``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        extra: Dict[str, Any] = {}
        for key, value in vars(record).items():
            if key in CONTEXT_FIELDS:
                if value is not None:
                    log_data[key] = value
            elif key not in _RECORD_ATTRIBUTES:
                extra[key] = value
        if extra:
            log_data["extra"] = extra

        if record.exc_info and record.exc_info != (None, None, None):
            log_data["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Defaults missing transfer fields to None so format strings always render."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, None)
        return True


def get_logging_config(
    log_level: Optional[str] = None, log_format: Optional[str] = None
) -> Dict[str, Any]:
    """Get logging configuration dictionary.

    Args:
        log_level: Overrides ``settings.log_level``
        log_format: Overrides ``settings.log_format``

    Returns:
        Logging configuration dict compatible with logging.config.dictConfig
    """
    settings = get_settings()
    log_format = (log_format or settings.log_format).lower()
    log_level = (log_level or settings.log_level).upper()

    formatters = {
        "standard": {
            "format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
        },
        "structured": {
            "format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s [url=%(url)s status=%(status_code)s bytes=%(bytes_so_far)s]"
        },
    }

    if log_format == "json":
        formatters["json"] = {
            "()": "throttleup.app.core.logging.JSONFormatter",
        }
        default_formatter = "json"
    else:
        default_formatter = "structured" if log_format == "structured" else "standard"

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": default_formatter,
            "stream": sys.stderr,
            "filters": ["context"],
        },
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {
            "context": {
                "()": "throttleup.app.core.logging.ContextFilter",
            },
        },
        "handlers": handlers,
        "loggers": {
            "throttleup": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {
            "level": "WARNING",
            "handlers": ["console"],
        },
    }


def setup_logging(
    log_level: Optional[str] = None, log_format: Optional[str] = None
) -> None:
    """Configure logging for the command line tool."""
    logging.config.dictConfig(get_logging_config(log_level, log_format))

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str = "throttleup") -> logging.Logger:
    """Get a logger instance with the specified name.

    Args:
        name: Logger name, defaults to "throttleup"

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def get_log_context(
    url: Optional[str] = None,
    method: Optional[str] = None,
    status_code: Optional[int] = None,
    **extra
) -> Dict[str, Any]:
    """Create a log context dictionary for use with the extra parameter.

    Example:
        >>> logger.info(
        ...     "Chunk accepted",
        ...     extra=get_log_context(url=session_url, status_code=308, bytes_so_far=262144)
        ... )
    """
    context = {
        "url": url,
        "method": method,
        "status_code": status_code,
    }
    context.update(extra)
    return {k: v for k, v in context.items() if v is not None}
