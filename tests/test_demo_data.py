from datetime import datetime

from spendwise.demo_data import DEMO_BUDGETS, RECURRING_BILLS, seed_demo_data

NOW = datetime(2024, 5, 20, 12)


def test_seed_demo_data_fills_account(engine, user_id):
    summary = seed_demo_data(engine, user_id, now=NOW, days=60)

    assert summary["budgets_created"] == len(DEMO_BUDGETS)
    assert summary["savings_goals_created"] == 1
    assert summary["recurring_created"] == len(RECURRING_BILLS)
    assert summary["date_range"] == "2024-03-21 to 2024-05-20"

    transactions = engine.get_transactions(user_id, {"limit": 100})
    assert transactions["total"] == summary["transactions_created"]
    assert engine.get_transactions(user_id, {"category": "salary"})["total"] == 5
    assert all(t["transaction_date"] <= NOW for t in transactions["transactions"])


def test_demo_recurring_bills_start_in_the_future(engine, user_id):
    seed_demo_data(engine, user_id, now=NOW, days=30)

    templates = engine.get_recurring_list(user_id, now=NOW)

    assert len(templates) == len(RECURRING_BILLS)
    assert all(t["next_occurrence"] >= NOW for t in templates)
    assert all(t["state"] == "ACTIVE" for t in templates)


def test_demo_savings_goal_receives_contributions(engine, user_id):
    seed_demo_data(engine, user_id, now=NOW, days=60)

    goal = engine.get_budgets(user_id, {"type": "savings"}, now=NOW)[0]

    assert goal["description"] == "Emergency fund"
    assert goal["progress"] > 0
