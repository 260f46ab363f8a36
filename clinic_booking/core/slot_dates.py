"""
Helpers for the ``day_month_year`` slot date key.

Slot dates are stored and compared as plain strings. They are parsed only to
check the booking window and to render dates for humans.
"""
import calendar
from datetime import date
from typing import Optional

from .exceptions import InvalidInput

DAYS_OF_WEEK = [
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"
]

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December"
]


def parse_slot_date(slot_date: str) -> date:
    """Parse ``"29_10_2026"`` into a date, raising InvalidInput on bad keys."""
    try:
        day, month, year = (int(part) for part in slot_date.split("_"))
        return date(year, month, day)
    except (ValueError, AttributeError):
        raise InvalidInput(f"Invalid slot date '{slot_date}', expected day_month_year")


def humanize_slot_date(slot_date: str) -> str:
    """Render a slot key as ``October 29, 2026`` for emails."""
    value = parse_slot_date(slot_date)
    return f"{MONTH_NAMES[value.month - 1]} {value.day}, {value.year}"


def weekday_name(value: date) -> str:
    return DAYS_OF_WEEK[value.weekday()]


def add_months(value: date, months: int) -> date:
    # Clamp to the last day of the target month (Jan 31 + 1 month -> Feb 28/29)
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def normalize_day_off(day_off: Optional[str]) -> str:
    """Return a canonical weekday name or "" for no day off."""
    if not day_off or not day_off.strip():
        return ""
    candidate = day_off.strip().capitalize()
    if candidate not in DAYS_OF_WEEK:
        raise InvalidInput(f"Invalid day off '{day_off}'")
    return candidate
