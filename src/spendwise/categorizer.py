"""
Spendwise - AI categorization

Suggests a category for a transaction from its description using Gemini.
Any invalid answer, missing API key or provider error falls back to the
type's default category ('other' / 'miscellaneous').

Author: Spendwise contributors
License: MIT
"""

import logging

import google.generativeai as genai

from .constants import CATEGORIES, FALLBACK_CATEGORY

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = (
    "You are a financial transaction categorizer. Categorize the transaction into "
    "ONE of these categories: {categories}. Respond with ONLY the category name in "
    "lowercase, nothing else.\n\n"
    'Transaction description: "{description}"'
)


class TransactionCategorizer:
    """Gemini-backed categorizer."""

    def __init__(self, api_key=None, model_name="gemini-1.5-flash"):
        self.api_key = api_key
        self.model_name = model_name
        self._model = None
        if api_key:
            genai.configure(api_key=api_key)

    @property
    def enabled(self):
        return bool(self.api_key)

    def _get_model(self):
        if self._model is None:
            self._model = genai.GenerativeModel(
                model_name=self.model_name,
                generation_config={"temperature": 0.2, "max_output_tokens": 20},
            )
        return self._model

    def categorize(self, description, txn_type="expense"):
        """
        Pick a category for a description.

        Returns:
            tuple: (category str, used_ai bool). used_ai is False whenever the
                   fallback category was used.
        """
        categories = CATEGORIES[txn_type]
        fallback = FALLBACK_CATEGORY[txn_type]
        if not self.enabled or not description:
            return fallback, False

        prompt = PROMPT_TEMPLATE.format(categories=", ".join(categories), description=description)
        try:
            response = self._get_model().generate_content(prompt)
            if not response.parts:
                logger.warning("[AI] Empty or blocked response for %r", description)
                return fallback, False
            answer = response.text.strip().lower().strip(".\"' ")
        except Exception as e:
            logger.error("[AI] Categorization failed for %r: %s", description, e)
            return fallback, False

        if answer not in categories:
            logger.warning("[AI] Invalid category %r for %r", answer, description)
            return fallback, False

        logger.info("[AI] Categorized %r as %s", description, answer)
        return answer, True


def build_categorizer(config):
    return TransactionCategorizer(config.get("GOOGLE_API_KEY"), config.get("GEMINI_MODEL", "gemini-1.5-flash"))
