"""
Datetime utility functions.
"""

from datetime import date, datetime, time
from typing import Optional, Union
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def parse_hhmm(value: Union[str, time]) -> time:
    """
    Parse a 24h "HH:MM" string (leading zero optional) into a time.

    Raises:
        ValueError: If the string is not a valid HH:MM time
    """
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Expected HH:MM string, got {type(value)}")

    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts) or len(parts[1]) != 2:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return time(hour, minute)


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def iso_or_none(value: Optional[Union[date, datetime]]) -> Optional[str]:
    """ISO-format a date/datetime, passing None through."""
    return value.isoformat() if value is not None else None
