"""
Spendwise - Financial advisor

Gemini prompts for spending insights, budget recommendations and free-form
questions about a user's finances. The engine gathers the numbers (see
insights.py); this module only turns them into prompts and parses answers.

Author: Spendwise contributors
License: MIT
"""

import logging
from decimal import Decimal, InvalidOperation

from .ai import DEFAULT_MODEL, AIServiceError, GeminiClient, extract_json
from .constants import EXPENSE_CATEGORIES

logger = logging.getLogger(__name__)

INSIGHTS_PROMPT = """You are a financial advisor. Analyze spending patterns and provide 3-5 actionable insights to improve financial health. Be specific and practical.

Total Income: {income}
Total Expenses: {expenses}
Net Savings: {savings}
Savings Rate: {savings_rate}%

Top Expense Categories:
{categories}

Provide insights in this format:
1. [Insight title]: [Detailed explanation]
2. [Insight title]: [Detailed explanation]
"""

RECOMMENDATIONS_PROMPT = """You are a budget planning expert. Suggest realistic monthly budget limits for each spending category based on income and current spending patterns.

Monthly Income: {income}
Current Spending by Category:
{categories}

Only use these categories: {allowed}.
Respond with a JSON object mapping category to monthly limit, for example {{"food": 8000, "transport": 5000}}.
"""

CHAT_PROMPT = """You are a helpful financial assistant. Answer questions about the user's finances based on the data below. Be concise and accurate.

User's Financial Data:
- Total Income: {income}
- Total Expenses: {expenses}
- Balance: {balance}
- Top Categories: {categories}

User Question: "{question}"

Answer:"""


def _category_lines(categories, with_percentage=True):
    if not categories:
        return "- none recorded"
    if with_percentage:
        return "\n".join(f"- {c['category']}: {c['amount']} ({c['percentage']}%)" for c in categories)
    return "\n".join(f"- {c['category']}: {c['amount']}" for c in categories)


class FinancialAdvisor(GeminiClient):
    """Gemini-backed insights, budget recommendations and chat."""

    generation_config = {"temperature": 0.6, "max_output_tokens": 800}

    def insights(self, spending):
        """Numbered insight list for a spending summary (income, expenses, savings, savings_rate, top_categories)."""
        return self.generate(INSIGHTS_PROMPT.format(
            income=spending["income"],
            expenses=spending["expenses"],
            savings=spending["savings"],
            savings_rate=spending["savings_rate"],
            categories=_category_lines(spending["top_categories"]),
        ))

    def budget_recommendations(self, monthly_income, spending):
        """
        Suggested monthly limit per expense category.

        Unknown categories and non-positive limits in the answer are dropped.

        Returns:
            dict: category -> Decimal limit

        Raises:
            AIServiceError: When the answer has no usable recommendation
        """
        answer = extract_json(self.generate(RECOMMENDATIONS_PROMPT.format(
            income=monthly_income,
            categories=_category_lines(spending, with_percentage=False),
            allowed=", ".join(EXPENSE_CATEGORIES),
        )))

        recommendations = {}
        for category, limit in answer.items():
            category = str(category).strip().lower()
            try:
                limit = Decimal(str(limit)).quantize(Decimal("0.01"))
            except (InvalidOperation, ValueError):
                continue
            if category in EXPENSE_CATEGORIES and limit.is_finite() and limit > 0:
                recommendations[category] = limit
        if not recommendations:
            raise AIServiceError("AI provider returned no usable budget recommendations")
        return recommendations

    def answer(self, question, finances):
        return self.generate(CHAT_PROMPT.format(
            income=finances["income"],
            expenses=finances["expenses"],
            balance=finances["balance"],
            categories=", ".join(finances["top_categories"]) or "none",
            question=question,
        ))


def build_advisor(config):
    return FinancialAdvisor(config.get("GOOGLE_API_KEY"), config.get("GEMINI_MODEL", DEFAULT_MODEL))
