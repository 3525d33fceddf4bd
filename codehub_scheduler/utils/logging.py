# codehub_scheduler/utils/logging.py
"""Structured logging with JSON format and correlation ID support.

Provides:
- JSON-formatted log output for structured logging
- Correlation ID via ContextVar: the HTTP request id for API calls,
  "task:<id>" inside a firing
- Centralized logger configuration
"""

import json
import logging
from contextvars import ContextVar
from typing import Any

# Correlation ID for tracking requests and firings across async contexts
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def set_request_id(request_id: str) -> None:
    """Set the correlation ID for the current context.

    Args:
        request_id: Request id or "task:<id>" for firings.
    """
    request_id_var.set(request_id)


def get_request_id() -> str:
    """Get the correlation ID for the current context.

    Returns:
        Current correlation ID, or empty string if not set.
    """
    return request_id_var.get()


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs log records as JSON with timestamp, level, logger name,
    message, and optional request_id for correlation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def configure_structured_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging for the application.

    Sets up a StreamHandler with StructuredFormatter and applies
    it to the root logger.

    Args:
        level: Logging level (default: logging.INFO).
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(level)


def configure_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure root logging from settings values.

    Args:
        level: Level name, e.g. "INFO".
        json_format: Emit JSON lines instead of plain text.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    if json_format:
        configure_structured_logging(numeric_level)
    else:
        logging.basicConfig(level=numeric_level, format=PLAIN_FORMAT)
