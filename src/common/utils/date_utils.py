"""Utility functions for date manipulation and the injectable clock."""

from datetime import date, datetime

import pytz

from src.common.exceptions.custom_exceptions import ValidationError


class SystemClock:
    """Wall clock pinned to a timezone. Services take it as a dependency so tests can swap it."""

    def __init__(self, timezone: str = "UTC") -> None:
        self.timezone = pytz.timezone(timezone)

    def now(self) -> datetime:
        return datetime.now(self.timezone)

    def today(self) -> date:
        return self.now().date()


def parse_date(value: date | str, field_name: str = "date") -> date:
    """Accepts a date or an ISO 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        raise ValidationError(f"{field_name} must be an ISO date (YYYY-MM-DD), got {value!r}")


def days_between(start: date, end: date) -> int:
    """Whole days from start to end; negative when end is before start."""
    return (end - start).days


def format_date_for_db(value: date | None) -> str | None:
    """Formats a date for MySQL DATE."""
    if value is None:
        return None
    return value.strftime("%Y-%m-%d")


def format_datetime_for_db(value: datetime | None) -> str | None:
    """Formats a datetime for MySQL DATETIME. Aware values are stored as their local wall time."""
    if value is None:
        return None
    return value.strftime("%Y-%m-%d %H:%M:%S")
