from types import SimpleNamespace

import pytest

from spendwise import ai as ai_module
from spendwise.ai import AIServiceError, extract_json
from spendwise.scanner import ReceiptScanner, build_scanner, normalize_scan


class FakeModel:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.contents = []

    def generate_content(self, contents):
        self.contents.append(contents)
        if self.error:
            raise self.error
        parts = [self.text] if self.text is not None else []
        return SimpleNamespace(parts=parts, text=self.text)


@pytest.fixture
def make_scanner(monkeypatch):
    monkeypatch.setattr(ai_module.genai, "configure", lambda **kwargs: None)

    def factory(model):
        monkeypatch.setattr(ai_module.genai, "GenerativeModel", lambda **kwargs: model)
        return ReceiptScanner(api_key="test-key")

    return factory


def test_extract_json_ignores_fences_and_prose():
    assert extract_json('Sure!\n```json\n{"amount": 12.5}\n```') == {"amount": 12.5}
    with pytest.raises(AIServiceError):
        extract_json("no receipt here")
    with pytest.raises(AIServiceError):
        extract_json("{not json}")


def test_scan_sends_image_and_normalizes_answer(make_scanner):
    model = FakeModel(text=(
        '```json\n{"merchant": " FreshMart ", "amount": "42.50", "date": "2024-01-15", '
        '"category": "Food", "items": [{"name": "Milk", "quantity": 2, "price": 1.5}, {"price": 3}], '
        '"confidence": 140}\n```'
    ))
    scanner = make_scanner(model)

    result = scanner.scan(b"image-bytes", "image/png")

    prompt, image = model.contents[0]
    assert "merchant" in prompt
    assert image == {"mime_type": "image/png", "data": b"image-bytes"}
    assert result["merchant"] == "FreshMart"
    assert result["amount"] == 42.5
    assert result["date"] == "2024-01-15"
    assert result["category"] == "food"
    assert result["items"] == [{"name": "Milk", "quantity": 2.0, "price": 1.5}]
    assert result["confidence"] == 100
    assert result["raw_text"].startswith("```json")


def test_unreadable_fields_become_none():
    result = normalize_scan({"amount": "twelve", "date": "15/01/2024", "category": "groceries"}, "{}")
    assert result["merchant"] is None
    assert result["amount"] is None
    assert result["date"] is None
    assert result["category"] is None
    assert result["items"] == []
    assert result["confidence"] is None


def test_scan_without_api_key_raises():
    with pytest.raises(AIServiceError, match="not configured"):
        ReceiptScanner(api_key=None).scan(b"x", "image/png")


def test_provider_error_and_blocked_answer_raise(make_scanner):
    with pytest.raises(AIServiceError, match="quota"):
        make_scanner(FakeModel(error=RuntimeError("quota exceeded"))).scan(b"x", "image/png")
    with pytest.raises(AIServiceError, match="empty"):
        make_scanner(FakeModel(text=None)).scan(b"x", "image/png")


def test_build_scanner_reads_config():
    scanner = build_scanner({"GOOGLE_API_KEY": None, "GEMINI_MODEL": "gemini-test"})
    assert scanner.model_name == "gemini-test"
    assert not scanner.enabled
