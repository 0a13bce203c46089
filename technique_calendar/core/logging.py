import logging
import re
import sys
import os
from typing import Dict, Any, Optional
import json
from datetime import datetime, timezone
import contextlib
import contextvars
from pathlib import Path

from technique_calendar.core.config import settings

# Global context variable for request information
request_context = contextvars.ContextVar("request_context", default={})

# Patterns that may carry OAuth secrets inside a log message
_SECRET_PATTERNS = [
    (re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE), r"\1[REDACTED]"),
    (
        re.compile(
            r"(\b(?:access_token|refresh_token|id_token|client_secret|code|state|token)"
            r"[\"']?\s*[:=]\s*[\"']?)[^\s&\"',}]+"
        ),
        r"\1[REDACTED]",
    ),
    (re.compile(r"\bya29\.[0-9A-Za-z\-_]+"), "[REDACTED]"),
]


def redact_secrets(message: str) -> str:
    """Mask bearer tokens, OAuth codes and token values in a string."""
    for pattern, replacement in _SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class JsonFormatter(logging.Formatter):
    """
    Formatter that outputs JSON strings after parsing the log record.
    """

    def __init__(self, **kwargs):
        super().__init__()
        self.fmt_dict = kwargs

    def format(self, record: logging.LogRecord) -> str:
        record_dict = self._prepare_log_dict(record)
        return json.dumps(record_dict, default=str)

    def _prepare_log_dict(self, record: logging.LogRecord) -> Dict[str, Any]:
        record_dict = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            record_dict["exception"] = self.formatException(record.exc_info)

        for key in self.fmt_dict:
            if key in record.__dict__:
                record_dict[key] = record.__dict__[key]

        # Include request context information if available
        context = request_context.get()
        if context:
            for key, value in context.items():
                # Don't overwrite existing keys
                if key not in record_dict:
                    record_dict[key] = value

        return record_dict


class ContextFilter(logging.Filter):
    """
    Filter that adds request context data to log records.
    """

    def filter(self, record):
        context = request_context.get()
        if context:
            for key, value in context.items():
                setattr(record, key, value)
        return True


class SecretRedactionFilter(logging.Filter):
    """
    Filter that rewrites the formatted message with secrets masked.

    Attached to handlers so records from every logger pass through it.
    """

    def filter(self, record):
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(level: Optional[str] = None):
    """
    Set up logging for the application.

    Args:
        level: Optional log level override (default to settings)
    """
    log_level = getattr(logging, level or settings.LOG_LEVEL)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler_filters = [ContextFilter(), SecretRedactionFilter()]

    console_handler = logging.StreamHandler(sys.stdout)

    # Use JSON formatter in production
    if settings.ENVIRONMENT == "production":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "[%(asctime)s] [%(levelname)s] %(name)s (%(filename)s:%(lineno)d) - %(message)s"
        )

    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    for handler_filter in handler_filters:
        console_handler.addFilter(handler_filter)
    root_logger.addHandler(console_handler)

    # Add file handler if LOG_FILE is set
    if settings.LOG_FILE:
        try:
            log_dir = Path(settings.LOG_FILE).parent
            os.makedirs(log_dir, exist_ok=True)

            file_handler = logging.FileHandler(settings.LOG_FILE)
            file_handler.setFormatter(formatter)
            file_handler.setLevel(log_level)
            for handler_filter in handler_filters:
                file_handler.addFilter(handler_filter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.warning(f"Error setting up file logging: {e}")

    # Set specific levels for third-party loggers to reduce noise
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.WARNING)
    # urllib3 logs full request URLs at DEBUG, including token query strings
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return logging.getLogger("technique_calendar")


@contextlib.contextmanager
def log_context(**context_data):
    """
    Context manager for adding context to logs.

    Usage:
        with log_context(user_id="abc", provider="google"):
            logger.info("Connected calendar")

    Args:
        **context_data: Key-value pairs to add to log context
    """
    current_context = request_context.get().copy()
    current_context.update(context_data)
    token = request_context.set(current_context)

    try:
        yield
    finally:
        request_context.reset(token)
