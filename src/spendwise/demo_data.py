"""
Spendwise - Demo Data Generator

Fills an account with realistic sample data for demo mode: four months of
paychecks and day-to-day expenses, a few monthly budgets, a savings goal with
contributions, and recurring bills.

Author: Spendwise contributors
License: MIT
"""

import logging
import random
from datetime import datetime, timedelta

from faker import Faker

logger = logging.getLogger(__name__)

fake = Faker()

RECURRING_BILLS = [
    {"description": "Rent", "amount": 1450, "category": "housing", "day": 1},
    {"description": "Electric Bill", "amount": 85, "category": "utilities", "day": 15},
    {"description": "Internet", "amount": 60, "category": "utilities", "day": 10},
    {"description": "Netflix", "amount": 15.99, "category": "subscriptions", "day": 5},
    {"description": "Gym Membership", "amount": 45, "category": "health", "day": 1},
]

# Random spending patterns: probability per day is 1 / every_days
EXPENSE_PATTERNS = [
    {"category": "food", "descriptions": ["Groceries", "Farmers Market", "Supermarket run"], "min": 40, "max": 120, "every_days": 7},
    {"category": "food", "descriptions": ["Lunch", "Dinner out", "Coffee"], "min": 8, "max": 65, "every_days": 3},
    {"category": "transport", "descriptions": ["Gas", "Train pass top-up", "Rideshare"], "min": 12, "max": 55, "every_days": 7},
    {"category": "shopping", "descriptions": ["Clothes", "Household items", "Electronics"], "min": 25, "max": 200, "every_days": 10},
    {"category": "entertainment", "descriptions": ["Movie tickets", "Concert", "Bowling"], "min": 20, "max": 80, "every_days": 14},
    {"category": "health", "descriptions": ["Pharmacy", "Doctor copay"], "min": 15, "max": 150, "every_days": 30},
]

DEMO_BUDGETS = [
    {"category": "food", "amount": 600},
    {"category": "transport", "amount": 200},
    {"category": "entertainment", "amount": 150},
]


def seed_demo_data(engine, user_id, now=None, days=120):
    """
    Generate demo data for a user.

    Args:
        engine: FinanceEngine instance
        user_id (int): Account to fill
        now (datetime, optional): End of the generated history
        days (int): Length of the generated history

    Returns:
        dict: Counts of what was created
    """
    now = engine.resolve_now(now)
    start_date = now - timedelta(days=days)
    month_start = datetime(now.year, now.month, 1)
    logger.info("[DEMO] Generating demo data for user %s from %s to %s", user_id, start_date.date(), now.date())

    # Budgets first so the day-to-day expenses below move their progress
    budgets_created = 0
    for budget in DEMO_BUDGETS:
        success, _ = engine.create_budget(user_id, {
            "type": "budget",
            "period": "monthly",
            "start_date": month_start,
            **budget,
        }, now=now)
        budgets_created += int(success)

    success, goal = engine.create_budget(user_id, {
        "type": "savings",
        "amount": 5000,
        "period": "yearly",
        "start_date": start_date,
        "description": "Emergency fund",
    }, now=now)
    goal_id = goal["budget_id"] if success else None

    recurring_created = 0
    for bill in RECURRING_BILLS:
        first_due = datetime(now.year, now.month, bill["day"])
        if first_due < now:
            first_due = first_due.replace(month=now.month % 12 + 1, year=now.year + (now.month == 12))
        success, message = engine.create_recurring(user_id, {
            "type": "expense",
            "amount": bill["amount"],
            "category": bill["category"],
            "description": bill["description"],
            "frequency": "monthly",
            "start_date": first_due,
        }, now=now)
        if success:
            recurring_created += 1
        else:
            logger.warning("[DEMO] Could not add recurring bill '%s': %s", bill["description"], message)

    employer = fake.company()
    transactions_created = 0
    paycheck_date = start_date
    while paycheck_date <= now:
        success, _ = engine.create_transaction(user_id, {
            "type": "income",
            "amount": 2100,
            "category": "salary",
            "description": f"Paycheck - {employer}",
            "date": paycheck_date,
        }, now=now)
        transactions_created += int(success)
        paycheck_date += timedelta(days=14)

    day = start_date
    while day <= now:
        for pattern in EXPENSE_PATTERNS:
            if random.random() >= 1.0 / pattern["every_days"]:
                continue
            success, _ = engine.create_transaction(user_id, {
                "type": "expense",
                "amount": round(random.uniform(pattern["min"], pattern["max"]), 2),
                "category": pattern["category"],
                "description": random.choice(pattern["descriptions"]),
                "date": day,
                "metadata": {
                    "merchant": fake.company(),
                    "payment_method": random.choice(["card", "cash", "transfer"]),
                },
            }, now=day)  # ledger picks the budget active on the expense date
            transactions_created += int(success)
        day += timedelta(days=1)

    if goal_id is not None:
        contribution_date = start_date + timedelta(days=15)
        while contribution_date <= now:
            success, _ = engine.create_transaction(user_id, {
                "type": "expense",
                "amount": random.randint(200, 500),
                "category": "miscellaneous",
                "description": "Transfer to emergency fund",
                "date": contribution_date,
                "savings_goal_id": goal_id,
            }, now=now)
            transactions_created += int(success)
            contribution_date += timedelta(days=30)

    summary = {
        "transactions_created": transactions_created,
        "budgets_created": budgets_created,
        "savings_goals_created": int(goal_id is not None),
        "recurring_created": recurring_created,
        "date_range": f"{start_date.date()} to {now.date()}",
        "persona": fake.name(),
    }
    logger.info("[DEMO] Demo data ready: %s", summary)
    return summary
