"""
Spendwise - Ledger Accumulator

Keeps a budget's running progress in step with the transactions recorded
against it. Expense transactions move the owner's active category budget;
savings-linked transactions move their savings goal.

Ledger updates are best effort. They run on their own connection after the
originating transaction write has committed, never raise, and report through
a LedgerResult that the caller logs. Progress is clamped at zero.

Author: Spendwise contributors
License: MIT
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class LedgerResult:
    """Outcome of one ledger adjustment."""
    applied: bool = False
    budget_id: Optional[int] = None
    progress: Optional[Decimal] = None
    error: Optional[str] = None


def log_ledger_result(result, context):
    """Report a ledger outcome at the call site. Failures are logged, never raised."""
    if result.error:
        logger.warning("[LEDGER] %s failed: %s", context, result.error)
    elif result.applied:
        logger.debug("[LEDGER] %s -> budget %s progress %s", context, result.budget_id, result.progress)
    else:
        logger.debug("[LEDGER] %s: no matching budget", context)


class LedgerMethods:
    """Budget progress bookkeeping for FinanceEngine."""

    def apply_delta(self, user_id, category, delta, now=None):
        """
        Add a signed amount to the active category budget that contains now.

        Args:
            user_id (int): Budget owner
            category (str): Expense category of the transaction
            delta (Decimal): Positive to record spend, negative to reverse it
            now (datetime.datetime, optional): Moment used to pick the active budget

        Returns:
            LedgerResult: applied=False (no error) when no active budget matches
        """
        now = self.resolve_now(now)
        now_str = self._to_datetime_str(now)
        return self._adjust_progress(
            """
            SELECT budget_id, progress FROM budgets
            WHERE user_id = ? AND type = 'budget' AND category = ?
              AND start_date <= ? AND end_date >= ?
            ORDER BY start_date DESC LIMIT 1
            """,
            (user_id, category, now_str, now_str),
            delta,
        )

    def apply_savings_delta(self, user_id, goal_id, delta):
        """Add a signed amount to a savings goal owned by user_id."""
        return self._adjust_progress(
            "SELECT budget_id, progress FROM budgets "
            "WHERE budget_id = ? AND user_id = ? AND type = 'savings'",
            (goal_id, user_id),
            delta,
        )

    def _adjust_progress(self, select_sql, params, delta):
        try:
            conn, cursor = self._get_db_connection()
        except Exception as e:
            return LedgerResult(error=str(e))

        try:
            cursor.execute(select_sql, params)
            row = cursor.fetchone()
            if row is None:
                return LedgerResult()

            progress = self._from_money_str(row["progress"]) + Decimal(delta)
            progress = max(Decimal("0.00"), progress)

            cursor.execute(
                "UPDATE budgets SET progress = ?, updated_at = CURRENT_TIMESTAMP WHERE budget_id = ?",
                (self._to_money_str(progress), row["budget_id"])
            )
            conn.commit()
            return LedgerResult(applied=True, budget_id=row["budget_id"], progress=progress)
        except Exception as e:
            conn.rollback()
            return LedgerResult(error=str(e))
        finally:
            cursor.close()
            conn.close()

    def record_ledger_effects(self, txn, sign, now=None, category=True, savings=True):
        """
        Apply (sign=1) or reverse (sign=-1) a transaction's effect on budgets.

        Expenses move the matching category budget; a savings link moves its goal
        regardless of type. Templates are rules, not cash movements, and are skipped.
        category=False or savings=False leaves that side untouched.
        """
        if txn.get("is_recurring"):
            return
        delta = txn["amount"] * sign
        if category and txn["type"] == "expense":
            result = self.apply_delta(txn["user_id"], txn["category"], delta, now=now)
            log_ledger_result(result, f"transaction {txn['transaction_id']} {txn['category']} {delta:+}")
        if savings and txn.get("savings_goal_id"):
            result = self.apply_savings_delta(txn["user_id"], txn["savings_goal_id"], delta)
            log_ledger_result(result, f"transaction {txn['transaction_id']} savings goal {txn['savings_goal_id']} {delta:+}")
