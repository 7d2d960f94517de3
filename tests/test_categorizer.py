from types import SimpleNamespace

import pytest

from spendwise import categorizer as categorizer_module
from spendwise.categorizer import TransactionCategorizer, build_categorizer


class FakeModel:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.prompts = []

    def generate_content(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        parts = [self.text] if self.text is not None else []
        return SimpleNamespace(parts=parts, text=self.text)


@pytest.fixture
def make_categorizer(monkeypatch):
    monkeypatch.setattr(categorizer_module.genai, "configure", lambda **kwargs: None)

    def factory(model):
        monkeypatch.setattr(categorizer_module.genai, "GenerativeModel", lambda **kwargs: model)
        return TransactionCategorizer(api_key="test-key")

    return factory


def test_without_api_key_uses_fallback():
    categorizer = TransactionCategorizer(api_key=None)
    assert not categorizer.enabled
    assert categorizer.categorize("Uber ride", "expense") == ("miscellaneous", False)
    assert categorizer.categorize("Bonus", "income") == ("other", False)


def test_valid_answer_is_used(make_categorizer):
    model = FakeModel(text=" Transport.\n")
    categorizer = make_categorizer(model)

    assert categorizer.categorize("Uber to the airport", "expense") == ("transport", True)
    assert "Uber to the airport" in model.prompts[0]
    assert "subscriptions" in model.prompts[0]


def test_answer_outside_category_list_falls_back(make_categorizer):
    categorizer = make_categorizer(FakeModel(text="groceries"))
    assert categorizer.categorize("Whole Foods", "expense") == ("miscellaneous", False)


def test_income_categories_are_separate(make_categorizer):
    categorizer = make_categorizer(FakeModel(text="food"))
    assert categorizer.categorize("Lunch refund", "income") == ("other", False)


def test_provider_error_falls_back(make_categorizer):
    categorizer = make_categorizer(FakeModel(error=RuntimeError("quota exceeded")))
    assert categorizer.categorize("Netflix", "expense") == ("miscellaneous", False)


def test_blocked_response_falls_back(make_categorizer):
    categorizer = make_categorizer(FakeModel(text=None))
    assert categorizer.categorize("Netflix", "expense") == ("miscellaneous", False)


def test_build_categorizer_reads_config():
    categorizer = build_categorizer({"GOOGLE_API_KEY": None, "GEMINI_MODEL": "gemini-test"})
    assert categorizer.model_name == "gemini-test"
    assert not categorizer.enabled
