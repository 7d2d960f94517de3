"""
Spendwise - Receipt scanning

Reads merchant, total, date, category and line items off a receipt image
with Gemini vision. The result is normalized into plain JSON values; fields
the model could not read come back as None.

Author: Spendwise contributors
License: MIT
"""

import datetime
import logging

from .ai import DEFAULT_MODEL, GeminiClient, extract_json
from .constants import EXPENSE_CATEGORIES

logger = logging.getLogger(__name__)

SCAN_PROMPT = (
    "Analyze this receipt image and extract the following information as a JSON object:\n"
    "{{\n"
    '  "merchant": "store name",\n'
    '  "amount": total_amount_as_number,\n'
    '  "date": "YYYY-MM-DD",\n'
    '  "category": "one of: {categories}",\n'
    '  "items": [{{"name": "item", "quantity": 1, "price": 100}}],\n'
    '  "confidence": 0-100\n'
    "}}\n\n"
    "If any field is unclear, use null. Be accurate with numbers. Respond with JSON only."
)


def _number(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _date(value):
    try:
        return datetime.datetime.strptime(str(value), "%Y-%m-%d").date().isoformat()
    except (TypeError, ValueError):
        return None


def normalize_scan(data, raw_text):
    """Coerce a model answer into the stored ocr_data shape."""
    category = str(data.get("category") or "").strip().lower()
    confidence = _number(data.get("confidence"))
    items = []
    for item in data.get("items") or []:
        if isinstance(item, dict) and item.get("name"):
            items.append({
                "name": str(item["name"]).strip(),
                "quantity": _number(item.get("quantity")),
                "price": _number(item.get("price")),
            })
    return {
        "merchant": (str(data["merchant"]).strip() or None) if data.get("merchant") else None,
        "amount": _number(data.get("amount")),
        "date": _date(data.get("date")),
        "category": category if category in EXPENSE_CATEGORIES else None,
        "items": items,
        "confidence": None if confidence is None else max(0, min(100, int(confidence))),
        "raw_text": raw_text,
    }


class ReceiptScanner(GeminiClient):
    """Gemini vision receipt reader."""

    generation_config = {"temperature": 0.2, "max_output_tokens": 1024}

    def scan(self, content, mime_type):
        """
        Extract receipt data from image bytes.

        Returns:
            dict: merchant, amount, date (ISO), category, items, confidence, raw_text

        Raises:
            AIServiceError: When scanning is unavailable or the answer is unusable
        """
        prompt = SCAN_PROMPT.format(categories="|".join(EXPENSE_CATEGORIES))
        text = self.generate([prompt, {"mime_type": mime_type, "data": content}])
        result = normalize_scan(extract_json(text), text)
        logger.info("[SCAN] Receipt read: merchant=%s amount=%s confidence=%s",
                    result["merchant"], result["amount"], result["confidence"])
        return result


def build_scanner(config):
    return ReceiptScanner(config.get("GOOGLE_API_KEY"), config.get("GEMINI_MODEL", DEFAULT_MODEL))
