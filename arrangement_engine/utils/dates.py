"""Calendar arithmetic helpers"""

from datetime import date, datetime, timedelta
from typing import Any

from dateutil.relativedelta import relativedelta

from arrangement_engine.core.exceptions import ValidationError


def to_date(value: Any, field: str = "date") -> date:
    """
    Coerce a date, datetime or ISO string into a date.

    ISO timestamps ("2025-01-12T00:00:00.000Z") keep only their calendar day.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            pass
    raise ValidationError("Expected an ISO date (YYYY-MM-DD)", field=field, value=value)


def add_days(start: date, days: int) -> date:
    return start + timedelta(days=days)


def add_weeks(start: date, weeks: int) -> date:
    return start + timedelta(weeks=weeks)


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping to the last day of shorter months (31 Jan + 1 -> 28/29 Feb)."""
    return start + relativedelta(months=months)


def start_of_week(day: date, week_starts_on: int = 0) -> date:
    """Return the first day of the week containing ``day`` (0 = Monday ... 6 = Sunday)."""
    offset = (day.weekday() - week_starts_on) % 7
    return day - timedelta(days=offset)


def end_of_week(day: date, week_starts_on: int = 0) -> date:
    return start_of_week(day, week_starts_on) + timedelta(days=6)


def format_display_date(day: date, fmt: str = "%d/%m/%Y") -> str:
    """Format for messages; the default is the en-GB day/month/year layout."""
    return day.strftime(fmt)
