"""
Journal Classification Core - Structured JSON Logging

Provides structured logging for the API and the processing worker.
Outputs JSON format in production for log aggregation.
"""

import logging
import json
import sys
import os
from datetime import datetime, timezone
from contextvars import ContextVar
from typing import Any, Dict, Optional
import traceback


# Attributes every LogRecord carries; anything else came in via `extra=`
_RESERVED_RECORD_KEYS = frozenset([
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
])


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs JSON logs.
    Compatible with log aggregation services.
    """

    def __init__(self, service_name: str = "journal-core"):
        super().__init__()
        self.service_name = service_name
        self.environment = os.environ.get("ENVIRONMENT", "development")
        self.hostname = os.environ.get("HOSTNAME", "unknown")

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
            "hostname": self.hostname,
            "location": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info) if record.exc_info[0] else None,
            }

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_KEYS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)


# Per-task processing context; each asyncio task sees its own values
_session_id: ContextVar[Optional[int]] = ContextVar("processing_session_id", default=None)
_session_code: ContextVar[Optional[str]] = ContextVar("processing_session_code", default=None)


class ProcessingContextFilter(logging.Filter):
    """
    Adds the active processing run (session id/code) to log records.

    The values come from context variables, so concurrent runs on one
    event loop each tag their own records.
    """

    def set_processing_context(
        self,
        session_id: Optional[int] = None,
        session_code: Optional[str] = None
    ):
        set_processing_context(session_id, session_code)

    def clear_processing_context(self):
        clear_processing_context()

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = _session_id.get()
        record.session_code = _session_code.get()
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "journal-core"
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production)
        service_name: Service name for log aggregation

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))

    if json_format:
        handler.setFormatter(JSONFormatter(service_name=service_name))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))

    handler.addFilter(ProcessingContextFilter())

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)


def set_processing_context(
    session_id: Optional[int] = None,
    session_code: Optional[str] = None
):
    """Tag subsequent log records with the session being processed."""
    _session_id.set(session_id)
    _session_code.set(session_code)


def clear_processing_context():
    """Clear processing context."""
    _session_id.set(None)
    _session_code.set(None)
