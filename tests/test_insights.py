from datetime import datetime
from decimal import Decimal

import pytest

from spendwise import ai as ai_module
from spendwise.advisor import FinancialAdvisor
from spendwise.ai import AIServiceError
from spendwise.insights import NOT_CONFIGURED

NOW = datetime(2024, 1, 10)


class StubCategorizer:
    def __init__(self, answers, enabled=True):
        self.answers = answers
        self.enabled = enabled
        self.calls = []

    def categorize(self, description, txn_type):
        self.calls.append((description, txn_type))
        return self.answers.get(description, ("miscellaneous", False))


class StubAdvisor:
    enabled = True

    def __init__(self, error=None):
        self.error = error
        self.seen = []

    def _reply(self, value, *args):
        self.seen.append(args)
        if self.error:
            raise self.error
        return value

    def insights(self, spending):
        return self._reply("1. Eat out less: food is your top category.", spending)

    def budget_recommendations(self, monthly_income, spending):
        return self._reply({"food": Decimal("800.00")}, monthly_income, spending)

    def answer(self, question, finances):
        return self._reply("You spent 300.00 this month.", question, finances)


class FakeModel:
    def __init__(self, text):
        self.text = text

    def generate_content(self, contents):
        return type("Response", (), {"parts": [self.text], "text": self.text})()


def add(engine, user_id, **data):
    success, txn = engine.create_transaction(user_id, data, now=NOW)
    assert success, txn
    return txn


# =============================================================================
# CATEGORIZATION
# =============================================================================

def test_categorize_description_without_categorizer_uses_fallback(engine):
    assert engine.categorize_description("Uber", "expense") == {
        "category": "miscellaneous", "ai_categorized": False,
    }


def test_categorize_description_uses_categorizer(engine):
    engine.categorizer = StubCategorizer({"Uber": ("transport", True)})
    assert engine.categorize_description(" Uber ") == {"category": "transport", "ai_categorized": True}


@pytest.mark.parametrize("description, txn_type, fragment", [
    ("", "expense", "required"),
    ("x" * 501, "expense", "cannot exceed"),
    ("Uber", "transfer", "Type must be"),
])
def test_categorize_description_validation(engine, description, txn_type, fragment):
    with pytest.raises(ValueError, match=fragment):
        engine.categorize_description(description, txn_type)


def test_bulk_categorize_moves_budget_progress(engine, user_id):
    success, budget = engine.create_budget(user_id, {
        "type": "budget", "category": "food", "amount": "1000", "period": "monthly",
        "start_date": "2024-01-01",
    }, now=datetime(2024, 1, 1))
    assert success, budget
    lunch = add(engine, user_id, type="expense", amount=30, category="miscellaneous", description="Lunch")
    add(engine, user_id, type="expense", amount=5, category="miscellaneous", description="Mystery")
    add(engine, user_id, type="expense", amount=9, category="miscellaneous")
    add(engine, user_id, type="expense", amount=12, category="transport", description="Bus")
    engine.categorizer = StubCategorizer({"Lunch": ("food", True)})

    success, result = engine.bulk_categorize(user_id, now=NOW)

    assert success
    assert result["total"] == 2
    assert result["categorized"] == 1
    assert sorted(call[0] for call in engine.categorizer.calls) == ["Lunch", "Mystery"]
    updated = engine.get_transaction(user_id, lunch["transaction_id"])
    assert updated["category"] == "food"
    assert updated["ai_categorized"] is True
    assert engine.get_budget(user_id, budget["budget_id"], now=NOW)["progress"] == Decimal("30.00")

    success, result = engine.bulk_categorize(user_id, now=NOW)
    assert result["total"] == 1
    assert result["categorized"] == 0


def test_bulk_categorize_requires_categorizer(engine, user_id):
    assert engine.bulk_categorize(user_id) == (False, NOT_CONFIGURED)
    engine.categorizer = StubCategorizer({}, enabled=False)
    assert engine.bulk_categorize(user_id) == (False, NOT_CONFIGURED)


# =============================================================================
# ADVISOR
# =============================================================================

def test_advisor_operations_require_configuration(engine, user_id):
    assert engine.get_financial_insights(user_id) == (False, NOT_CONFIGURED)
    assert engine.get_budget_recommendations(user_id, 5000) == (False, NOT_CONFIGURED)
    assert engine.chat(user_id, "How am I doing?") == (False, NOT_CONFIGURED)


def test_insights_are_built_from_overview(engine, user_id):
    add(engine, user_id, type="income", amount=1000, category="salary")
    add(engine, user_id, type="expense", amount=300, category="food")
    engine.advisor = StubAdvisor()

    success, result = engine.get_financial_insights(user_id)

    assert success
    assert result["insights"].startswith("1. Eat out less")
    assert result["data"]["income"] == Decimal("1000.00")
    assert result["data"]["expenses"] == Decimal("300.00")
    assert result["data"]["top_categories"][0]["category"] == "food"


def test_budget_recommendations(engine, user_id):
    add(engine, user_id, type="expense", amount=300, category="food")
    engine.advisor = StubAdvisor()

    success, result = engine.get_budget_recommendations(user_id, "5000")

    assert success
    assert result == {"food": Decimal("800.00")}
    income, spending = engine.advisor.seen[0]
    assert income == Decimal("5000.00")
    assert spending[0]["category"] == "food"
    assert engine.get_budget_recommendations(user_id, "lots") == (False, "Monthly income must be a positive number")


def test_chat_validation_and_answer(engine, user_id):
    engine.advisor = StubAdvisor()

    assert engine.chat(user_id, "  ") == (False, "Message is required")
    assert engine.chat(user_id, "?" * 501)[1] == "Message cannot exceed 500 characters"
    success, result = engine.chat(user_id, " How much did I spend? ")
    assert success
    assert result == {"question": "How much did I spend?", "answer": "You spent 300.00 this month."}


def test_provider_errors_are_reported(engine, user_id):
    engine.advisor = StubAdvisor(error=AIServiceError("AI provider error: quota exceeded"))

    assert engine.get_financial_insights(user_id) == (False, "AI provider error: quota exceeded")
    assert engine.chat(user_id, "Hi")[0] is False


def test_advisor_drops_unknown_categories(monkeypatch):
    monkeypatch.setattr(ai_module.genai, "configure", lambda **kwargs: None)
    monkeypatch.setattr(ai_module.genai, "GenerativeModel", lambda **kwargs: FakeModel(
        'Here you go: {"Food": 8000, "groceries": 100, "transport": "abc", "bills": -5, "health": 1200.555}'
    ))
    advisor = FinancialAdvisor(api_key="test-key")

    assert advisor.budget_recommendations(Decimal("5000"), []) == {
        "food": Decimal("8000.00"), "health": Decimal("1200.56"),
    }


def test_advisor_without_usable_recommendation_raises(monkeypatch):
    monkeypatch.setattr(ai_module.genai, "configure", lambda **kwargs: None)
    monkeypatch.setattr(ai_module.genai, "GenerativeModel", lambda **kwargs: FakeModel('{"groceries": 100}'))

    with pytest.raises(AIServiceError, match="no usable"):
        FinancialAdvisor(api_key="test-key").budget_recommendations(Decimal("5000"), [])


# =============================================================================
# HTTP
# =============================================================================

def test_ai_endpoints_without_configuration_are_unavailable(auth_client):
    assert auth_client.post("/api/ai/insights", json={}).status_code == 503
    assert auth_client.post("/api/ai/chat", json={"message": "Hi"}).status_code == 503
    assert auth_client.post("/api/ai/bulk-categorize").status_code == 503
    assert auth_client.post("/api/ai/chat", json={}).status_code == 400


def test_ai_endpoints(auth_client, engine):
    engine.advisor = StubAdvisor()
    engine.categorizer = StubCategorizer({"Taxi": ("transport", True)})

    response = auth_client.post("/api/ai/categorize", json={"description": "Taxi"})
    assert response.status_code == 200
    assert response.get_json() == {"category": "transport", "ai_categorized": True}
    assert auth_client.post("/api/ai/categorize", json={}).status_code == 400

    response = auth_client.post("/api/ai/chat", json={"message": "Hi"})
    assert response.status_code == 200
    assert response.get_json()["answer"] == "You spent 300.00 this month."

    response = auth_client.post("/api/ai/budget-recommendations", json={"monthly_income": 5000})
    assert response.status_code == 200
    assert "food" in response.get_json()["recommendations"]
    assert auth_client.post("/api/ai/insights", json={}).status_code == 200
