# codehub_scheduler/interfaces/api/security.py
"""API rate limiting."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from codehub_scheduler.config import settings

limiter = Limiter(key_func=get_remote_address)


def get_rate_limit_string() -> str:
    """Get rate limit string for slowapi.

    Returns:
        Rate limit string in format "N/minute".
    """
    return f"{settings.api_rate_limit}/minute"
