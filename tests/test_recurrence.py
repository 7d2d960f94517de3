from datetime import datetime
from decimal import Decimal

from spendwise.recurrence import (
    ACTIVE,
    ENDED,
    initial_next_occurrence,
    next_after,
    occurrences_remaining,
    recurrence_state,
    upcoming_occurrences,
)


def make_template(next_occurrence, end_date=None, frequency="monthly"):
    return {
        "next_occurrence": next_occurrence,
        "end_date": end_date,
        "frequency": frequency,
        "amount": Decimal("1200.00"),
        "type": "expense",
        "category": "housing",
        "description": "Rent",
    }


def test_state_active_while_next_occurrence_within_end():
    template = make_template(datetime(2024, 1, 15), datetime(2024, 3, 1))
    assert recurrence_state(template, datetime(2024, 1, 1)) == ACTIVE


def test_state_ended_without_next_occurrence():
    assert recurrence_state(make_template(None), datetime(2024, 1, 1)) == ENDED


def test_state_ended_once_end_date_passes():
    template = make_template(datetime(2024, 1, 15), datetime(2024, 3, 1))
    assert recurrence_state(template, datetime(2024, 3, 2)) == ENDED


def test_state_ended_when_next_occurrence_beyond_end():
    template = make_template(datetime(2024, 4, 15), datetime(2024, 3, 1))
    assert recurrence_state(template, datetime(2024, 1, 1)) == ENDED


def test_initial_next_occurrence():
    start = datetime(2024, 1, 15)
    assert initial_next_occurrence(start, None) == start
    assert initial_next_occurrence(start, datetime(2024, 2, 1)) == start
    assert initial_next_occurrence(start, datetime(2024, 1, 1)) is None


def test_next_after_advances_one_period():
    template = make_template(datetime(2024, 1, 15), datetime(2024, 3, 1))
    assert next_after(template, datetime(2024, 1, 15)) == (datetime(2024, 2, 15), datetime(2024, 3, 1))


def test_next_after_ends_series_past_end_date():
    now = datetime(2024, 2, 15, 0, 5)
    template = make_template(datetime(2024, 2, 15), datetime(2024, 3, 1))
    assert next_after(template, now) == (None, now)


def test_upcoming_stops_at_end_date():
    template = make_template(datetime(2024, 1, 15), datetime(2024, 3, 1))
    upcoming = upcoming_occurrences(template, 5, datetime(2024, 1, 1))

    assert [item["date"] for item in upcoming] == [datetime(2024, 1, 15), datetime(2024, 2, 15)]
    assert upcoming[0]["amount"] == Decimal("1200.00")
    assert upcoming[0]["category"] == "housing"


def test_upcoming_open_ended_returns_count():
    template = make_template(datetime(2024, 1, 1), frequency="weekly")
    upcoming = upcoming_occurrences(template, 3, datetime(2024, 1, 1))
    assert [item["date"].day for item in upcoming] == [1, 8, 15]


def test_upcoming_empty_for_ended_template():
    assert upcoming_occurrences(make_template(None), 5, datetime(2024, 1, 1)) == []


def test_occurrences_remaining():
    now = datetime(2024, 1, 1)
    assert occurrences_remaining(make_template(datetime(2024, 1, 15)), now) == "Unlimited"
    assert occurrences_remaining(make_template(datetime(2024, 1, 15), datetime(2024, 3, 1)), now) == 2
    assert occurrences_remaining(make_template(None), now) == 0


def test_occurrences_remaining_is_capped():
    template = make_template(datetime(2024, 1, 1), datetime(2030, 1, 1), frequency="daily")
    assert occurrences_remaining(template, datetime(2024, 1, 1)) == 1000
