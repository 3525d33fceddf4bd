# codehub_scheduler/utils/__init__.py
"""Utility functions for the Codehub scheduler."""

from codehub_scheduler.utils.logging import (
    configure_logging,
    configure_structured_logging,
    get_request_id,
    set_request_id,
)
from codehub_scheduler.utils.observability import setup_logfire

__all__ = [
    "setup_logfire",
    "set_request_id",
    "get_request_id",
    "configure_logging",
    "configure_structured_logging",
]
