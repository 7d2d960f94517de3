"""
Spendwise - Interval Calculator

Calendar-aware period arithmetic for recurring transactions and budget periods.
Months and years are added with dateutil's relativedelta, which clamps to the
last valid day (Jan 31 + 1 month = Feb 28/29, Feb 29 + 1 year = Feb 28).

Author: Spendwise contributors
License: MIT
"""

from dateutil.relativedelta import relativedelta

_OFFSETS = {
    "daily": relativedelta(days=1),
    "weekly": relativedelta(weeks=1),
    "monthly": relativedelta(months=1),
    "yearly": relativedelta(years=1),
}


def advance(timestamp, frequency):
    """
    Advance a timestamp by exactly one calendar period.

    Args:
        timestamp (datetime.datetime): Starting point
        frequency (str): 'daily', 'weekly', 'monthly' or 'yearly'

    Returns:
        datetime.datetime: The timestamp one period later

    Raises:
        ValueError: If frequency is not a known value

    Example:
        >>> advance(datetime.datetime(2024, 1, 31), 'monthly')
        datetime.datetime(2024, 2, 29, 0, 0)
    """
    try:
        offset = _OFFSETS[frequency]
    except KeyError:
        raise ValueError(f"Unknown frequency: {frequency!r}") from None
    return timestamp + offset


def period_end(start, period):
    """Default end of a budget period that begins at start."""
    return advance(start, period)
