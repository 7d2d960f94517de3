"""
Spendwise - Recurrence State Machine

A recurring template is a transaction row with is_recurring = 1. It is ACTIVE
while it has a next_occurrence and its end_date (if any) has not passed, and
ENDED otherwise. ENDED is terminal: nothing is materialized from it and
updates are rejected.

All functions here are pure. They take the template as a dict with datetime
values for 'next_occurrence' and 'end_date' and never touch the database.

Author: Spendwise contributors
License: MIT
"""

from .constants import MAX_OCCURRENCE_COUNT
from .intervals import advance

ACTIVE = "ACTIVE"
ENDED = "ENDED"


def recurrence_state(template, now):
    """Return ACTIVE or ENDED for a template at the given moment."""
    next_occurrence = template.get("next_occurrence")
    end_date = template.get("end_date")

    if next_occurrence is None:
        return ENDED
    if end_date is not None and (end_date < now or end_date < next_occurrence):
        return ENDED
    return ACTIVE


def is_active(template, now):
    return recurrence_state(template, now) == ACTIVE


def initial_next_occurrence(start, end_date):
    """
    First due date of a new template.

    The series starts on its start date. A template whose end date is already
    before that first occurrence never materializes anything, so it is created
    ENDED (next_occurrence = None).
    """
    if end_date is not None and end_date < start:
        return None
    return start


def next_after(template, now):
    """
    Decide the template's next state after one occurrence has been materialized.

    Args:
        template (dict): Template with 'next_occurrence', 'end_date', 'frequency'
        now (datetime.datetime): Current time

    Returns:
        tuple: (next_occurrence, end_date). When the advanced date would pass
            end_date the series ends: (None, now).
    """
    following = advance(template["next_occurrence"], template["frequency"])
    end_date = template.get("end_date")
    if end_date is not None and following > end_date:
        return None, now
    return following, end_date


def upcoming_occurrences(template, count, now):
    """
    Preview the next `count` occurrences without persisting anything.

    Returns a list of dicts with date, amount, type, category and description.
    Stops early at the first date beyond end_date; empty when the template is ENDED.

    Example:
        A monthly template starting 2024-01-15 and ending 2024-03-01 previews
        [2024-01-15, 2024-02-15] for any count >= 2.
    """
    if count <= 0 or recurrence_state(template, now) == ENDED:
        return []

    end_date = template.get("end_date")
    occurrence = template["next_occurrence"]
    upcoming = []

    for _ in range(count):
        if end_date is not None and occurrence > end_date:
            break
        upcoming.append({
            "date": occurrence,
            "amount": template.get("amount"),
            "type": template.get("type"),
            "category": template.get("category"),
            "description": template.get("description"),
        })
        occurrence = advance(occurrence, template["frequency"])

    return upcoming


def occurrences_remaining(template, now):
    """Occurrences left in the series: an int, or 'Unlimited' when open-ended."""
    if recurrence_state(template, now) == ENDED:
        return 0

    end_date = template.get("end_date")
    if end_date is None:
        return "Unlimited"

    remaining = 0
    occurrence = template["next_occurrence"]
    while occurrence <= end_date and remaining < MAX_OCCURRENCE_COUNT:
        remaining += 1
        occurrence = advance(occurrence, template["frequency"])
    return remaining
