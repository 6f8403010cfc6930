"""Datetime utilities for timestamps and calendar-month arithmetic.

This module provides a replacement for the deprecated datetime.utcnow()
function plus the month helpers used by installment scheduling and
credit-card billing cycles.

Usage:
    from purchase_ledger.utils.datetime_utils import utc_now, add_months

    # Instead of datetime.utcnow()
    timestamp = utc_now()

    # For SQLAlchemy Column defaults
    created_at = Column(DateTime, default=utc_now)

    # Same day next month, clamped to the month's last day
    add_months(date(2025, 1, 31), 1)  # date(2025, 2, 28)
"""

import calendar
from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    This is the replacement for the deprecated datetime.utcnow().

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def add_months(value: date, months: int) -> date:
    """Advance a date by a number of calendar months.

    The day of month is kept when possible and clamped to the last day of
    the target month otherwise (Jan 31 + 1 month = Feb 28/29).

    Args:
        value: Starting date
        months: Number of months to add (may be negative)

    Returns:
        The shifted date
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def month_start(value: date) -> date:
    """Return the first day of the month containing value."""
    return date(value.year, value.month, 1)


def day_in_month(year: int, month: int, day: int) -> date:
    """Build a date, clamping day to the month's length.

    Card closing/due days such as 31 land on the last day of shorter months.
    """
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def to_date(value) -> date:
    """Normalize a date, datetime or ISO 'YYYY-MM-DD' string to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])
