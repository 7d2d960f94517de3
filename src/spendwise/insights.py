"""
Spendwise - AI assistance

Engine-side AI operations: one-off categorization, bulk recategorization of
uncategorized transactions, spending insights, budget recommendations and
chat. Numbers come from the analytics methods; the advisor and categorizer
collaborators turn them into text. Every AI failure is reported as a message
starting with "AI ".

Author: Spendwise contributors
License: MIT
"""

import logging

from .ai import AIServiceError
from .constants import (
    BULK_CATEGORIZE_LIMIT,
    FALLBACK_CATEGORY,
    MAX_CHAT_MESSAGE_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    TRANSACTION_TYPES,
)

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "AI features are not configured (GOOGLE_API_KEY is not set)"


class InsightMethods:
    """AI-assisted operations for FinanceEngine."""

    def _advisor_ready(self):
        return self.advisor is not None and self.advisor.enabled

    def _spending_summary(self, user_id, start_date=None, end_date=None):
        overview = self.get_overview(user_id, start_date, end_date)
        return {
            "income": overview["income"]["total"],
            "expenses": overview["expenses"]["total"],
            "savings": overview["balance"],
            "savings_rate": overview["savings_rate"],
            "top_categories": [
                {"category": c["category"], "amount": c["amount"], "percentage": c["percentage"]}
                for c in overview["top_categories"]
            ],
        }

    # =============================================================================
    # CATEGORIZATION
    # =============================================================================

    def categorize_description(self, description, txn_type="expense"):
        """
        Suggest a category without recording anything.

        Returns:
            dict: {category, ai_categorized}

        Raises:
            ValueError: On a missing/too long description or an unknown type
        """
        description = (description or "").strip()
        if not description:
            raise ValueError("Description is required")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")
        if txn_type not in TRANSACTION_TYPES:
            raise ValueError("Type must be 'income' or 'expense'")

        if self.categorizer is None:
            return {"category": FALLBACK_CATEGORY[txn_type], "ai_categorized": False}
        category, used_ai = self.categorizer.categorize(description, txn_type)
        return {"category": category, "ai_categorized": used_ai}

    def bulk_categorize(self, user_id, now=None):
        """
        Recategorize concrete transactions still sitting in their fallback category.

        Only transactions with a description that were never categorized by AI
        are considered, at most BULK_CATEGORIZE_LIMIT per call. Budget progress
        follows each category change.

        Returns:
            tuple: (True, {total, categorized, message}) or (False, error message)
        """
        if self.categorizer is None or not self.categorizer.enabled:
            return False, NOT_CONFIGURED
        now = self.resolve_now(now)

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                """
                SELECT * FROM transactions
                WHERE user_id = ? AND is_recurring = 0 AND ai_categorized = 0
                  AND description IS NOT NULL AND description != ''
                  AND ((type = 'income' AND category = ?) OR (type = 'expense' AND category = ?))
                ORDER BY transaction_date DESC LIMIT ?
                """,
                (user_id, FALLBACK_CATEGORY["income"], FALLBACK_CATEGORY["expense"], BULK_CATEGORIZE_LIMIT)
            )
            candidates = [self._transaction_from_row(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

        categorized = 0
        for txn in candidates:
            category, used_ai = self.categorizer.categorize(txn["description"], txn["type"])
            if not used_ai or category == txn["category"]:
                continue

            conn, cursor = self._get_db_connection()
            try:
                cursor.execute(
                    "UPDATE transactions SET category = ?, ai_categorized = 1, updated_at = CURRENT_TIMESTAMP "
                    "WHERE transaction_id = ? AND user_id = ?",
                    (category, txn["transaction_id"], user_id)
                )
                conn.commit()
            except Exception:
                conn.rollback()
                logger.warning("[AI] Could not recategorize transaction %s", txn["transaction_id"], exc_info=True)
                continue
            finally:
                cursor.close()
                conn.close()

            self.record_ledger_effects(txn, -1, now=now, savings=False)
            self.record_ledger_effects(dict(txn, category=category), 1, now=now, savings=False)
            categorized += 1

        logger.info("[AI] Bulk categorization for user %s: %s of %s", user_id, categorized, len(candidates))
        if not candidates:
            message = "No transactions need categorization"
        else:
            message = f"Successfully categorized {categorized} out of {len(candidates)} transactions"
        return True, {"total": len(candidates), "categorized": categorized, "message": message}

    # =============================================================================
    # ADVISOR
    # =============================================================================

    def get_financial_insights(self, user_id, start_date=None, end_date=None):
        """
        Written insights about a period's spending.

        Returns:
            tuple: (True, {insights, data}) or (False, error message)
        """
        if not self._advisor_ready():
            return False, NOT_CONFIGURED
        data = self._spending_summary(user_id, start_date, end_date)
        try:
            insights = self.advisor.insights(data)
        except AIServiceError as e:
            return False, str(e)
        logger.info("[AI] Insights generated for user %s", user_id)
        return True, {"insights": insights, "data": data}

    def get_budget_recommendations(self, user_id, monthly_income):
        """
        Suggested monthly limits per expense category for a given income.

        Returns:
            tuple: (True, {category: Decimal}) or (False, error message)
        """
        try:
            income = self._parse_amount(monthly_income, allow_zero=True)
        except ValueError:
            return False, "Monthly income must be a positive number"
        if not self._advisor_ready():
            return False, NOT_CONFIGURED

        spending = [
            {"category": c["category"], "amount": c["amount"]}
            for c in self.get_category_breakdown(user_id, "expense")
        ]
        try:
            recommendations = self.advisor.budget_recommendations(income, spending)
        except AIServiceError as e:
            return False, str(e)
        return True, recommendations

    def chat(self, user_id, message):
        """
        Answer a question about the user's finances.

        Returns:
            tuple: (True, {question, answer}) or (False, error message)
        """
        message = (message or "").strip()
        if not message:
            return False, "Message is required"
        if len(message) > MAX_CHAT_MESSAGE_LENGTH:
            return False, f"Message cannot exceed {MAX_CHAT_MESSAGE_LENGTH} characters"
        if not self._advisor_ready():
            return False, NOT_CONFIGURED

        summary = self._spending_summary(user_id)
        finances = {
            "income": summary["income"],
            "expenses": summary["expenses"],
            "balance": summary["savings"],
            "top_categories": [c["category"] for c in summary["top_categories"]],
        }
        try:
            answer = self.advisor.answer(message, finances)
        except AIServiceError as e:
            return False, str(e)
        logger.info("[AI] Chat answer for user %s (%s chars asked)", user_id, len(message))
        return True, {"question": message, "answer": answer}
