from datetime import datetime

import pytest

from spendwise.intervals import advance, period_end


def test_advance_daily_and_weekly():
    start = datetime(2024, 3, 10, 9, 30)
    assert advance(start, "daily") == datetime(2024, 3, 11, 9, 30)
    assert advance(start, "weekly") == datetime(2024, 3, 17, 9, 30)


def test_advance_monthly_clamps_to_month_end():
    assert advance(datetime(2024, 1, 31), "monthly") == datetime(2024, 2, 29)
    assert advance(datetime(2023, 1, 31), "monthly") == datetime(2023, 2, 28)
    assert advance(datetime(2024, 12, 15), "monthly") == datetime(2025, 1, 15)


def test_advance_yearly_from_leap_day():
    assert advance(datetime(2024, 2, 29), "yearly") == datetime(2025, 2, 28)


def test_advance_rejects_unknown_frequency():
    with pytest.raises(ValueError):
        advance(datetime(2024, 1, 1), "fortnightly")


def test_period_end_is_one_period_later():
    assert period_end(datetime(2024, 1, 1), "monthly") == datetime(2024, 2, 1)
    assert period_end(datetime(2024, 1, 1), "weekly") == datetime(2024, 1, 8)
    assert period_end(datetime(2024, 1, 1), "yearly") == datetime(2025, 1, 1)
