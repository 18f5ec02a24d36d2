"""Structured logging configuration for routegate.

This module provides a structured logging setup using Python's standard
logging module with JSON formatting for production environments.
"""

import json
import logging
import logging.config
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, Optional

from routegate.app.core.config import settings

# Request ID of the request being served, set by RequestIdMiddleware
_current_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def set_request_id(request_id: Optional[str]) -> None:
    _current_request_id.set(request_id)


def get_request_id() -> Optional[str]:
    return _current_request_id.get()


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs log records as JSON objects for consumption by log aggregation
    systems.

    Attributes:
        fields: List of fields to include in JSON output
    """

    # Standard fields always included
    STANDARD_FIELDS = ["name", "levelname", "message", "timestamp"]

    # Contextual fields for request tracking
    CONTEXT_FIELDS = [
        "request_id",      # Request ID from X-Request-ID header
        "endpoint_class",  # Logical operation family (directions, matrix, ...)
        "provider",        # Upstream provider name (openrouteservice, nominatim, ...)
        "provenance",      # cached | real | fallback
        "path",            # Request path
        "method",          # HTTP method
        "status_code",     # HTTP response status
        "duration_ms",     # Call duration in milliseconds
    ]

    _RESERVED = frozenset(
        (
            "name", "msg", "args", "levelname", "levelno", "pathname",
            "filename", "module", "exc_info", "exc_text", "stack_info",
            "lineno", "funcName", "created", "msecs", "relativeCreated",
            "thread", "threadName", "processName", "process", "message",
            "asctime", "timestamp", "logger", "level", "source", "taskName",
        )
    )

    def __init__(
        self,
        fields: Optional[list] = None,
        datefmt: Optional[str] = None,
    ):
        """Initialize JSON formatter.

        Args:
            fields: Custom fields to include (defaults to all standard + context)
            datefmt: Date format string (ISO8601 by default)
        """
        super().__init__(datefmt=datefmt)
        self.fields = fields or (self.STANDARD_FIELDS + self.CONTEXT_FIELDS)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string representation of the log record
        """
        log_data: Dict[str, Any] = {}

        record.message = record.getMessage()

        log_data["timestamp"] = datetime.now().astimezone().isoformat()
        log_data["level"] = record.levelname
        log_data["logger"] = record.name
        log_data["message"] = record.message

        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        for field in self.CONTEXT_FIELDS:
            if hasattr(record, field):
                value = getattr(record, field)
                if value is not None and value != "-":
                    log_data[field] = value

        # Anything else passed through extra=
        for key, value in record.__dict__.items():
            if key in self._RESERVED or key in self.CONTEXT_FIELDS:
                continue
            log_data.setdefault("extra", {})[key] = value

        if record.exc_info and record.exc_info != (None, None, None):
            log_data["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Logging filter that adds contextual fields to log records.

    Adds default values for request_id, endpoint_class, provider and other
    contextual fields if not already present in the log record.
    """

    CONTEXT_DEFAULTS = {
        "request_id": None,
        "endpoint_class": None,
        "provider": None,
        "provenance": None,
        "path": None,
        "method": None,
        "status_code": None,
        "duration_ms": None,
    }

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context fields to log record if not present.

        Args:
            record: Log record to enrich

        Returns:
            True to allow the record through
        """
        for field, default in self.CONTEXT_DEFAULTS.items():
            if not hasattr(record, field):
                setattr(record, field, default)
        if record.request_id is None:
            record.request_id = _current_request_id.get()
        return True


def get_logging_config() -> Dict[str, Any]:
    """Get logging configuration dictionary.

    Returns:
        Logging configuration dict compatible with logging.config.dictConfig
    """
    log_format = getattr(settings, "log_format", "text").lower()
    log_level = getattr(settings, "log_level", "INFO").upper()

    formatters = {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "structured": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s - request_id=%(request_id)s - endpoint_class=%(endpoint_class)s - provider=%(provider)s"
        },
    }

    if log_format == "json":
        formatters["json"] = {
            "()": "routegate.app.core.logging.JSONFormatter",
        }
        default_formatter = "json"
    else:
        default_formatter = "structured" if log_format == "structured" else "standard"

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": default_formatter,
            "stream": sys.stdout,
            "filters": ["context"],
        },
        "error_console": {
            "class": "logging.StreamHandler",
            "level": "ERROR",
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
                "()": "routegate.app.core.logging.ContextFilter",
            },
        },
        "handlers": handlers,
        "loggers": {
            "routegate": {
                "level": log_level,
                "handlers": ["console", "error_console"],
                "propagate": False,
            },
            "uvicorn": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
    }


def setup_logging() -> None:
    """Configure logging for the application."""
    logging.config.dictConfig(get_logging_config())

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str = "routegate") -> logging.Logger:
    """Get a logger instance with the specified name.

    Args:
        name: Logger name, defaults to "routegate"

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def get_log_context(
    request_id: Optional[str] = None,
    endpoint_class: Optional[str] = None,
    provider: Optional[str] = None,
    provenance: Optional[str] = None,
    **extra
) -> Dict[str, Any]:
    """Create a log context dictionary for use with extra parameter.

    Args:
        request_id: Request ID
        endpoint_class: Endpoint class value (e.g. "matrix")
        provider: Upstream provider name
        provenance: Result provenance (cached, real, fallback)
        **extra: Additional custom fields

    Returns:
        Dictionary suitable for passing as extra= parameter to logging calls

    Example:
        >>> logger.info(
        ...     "Primary call succeeded",
        ...     extra=get_log_context(endpoint_class="matrix", provenance="real")
        ... )
    """
    context = {
        "request_id": request_id,
        "endpoint_class": endpoint_class,
        "provider": provider,
        "provenance": provenance,
    }
    context.update(extra)
    return {k: v for k, v in context.items() if v is not None}
