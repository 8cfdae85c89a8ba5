"""
Datetime utility functions.
"""

from datetime import datetime
from typing import Optional
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip).

    Aware datetimes are converted to UTC; None passes through.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def isoformat_or_none(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for API responses."""
    return value.isoformat() if value else None


def format_match_date(value: datetime) -> str:
    """Format a match date as YYYY-MM-DD."""
    return ensure_utc(value).strftime("%Y-%m-%d")


def format_match_datetime(value: datetime) -> str:
    """Format a match start as 'YYYY-MM-DD HH:MM UTC'."""
    return ensure_utc(value).strftime("%Y-%m-%d %H:%M UTC")
