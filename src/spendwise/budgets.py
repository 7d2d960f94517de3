"""
Spendwise - Budgets & Savings Goals

One table holds both spending limits (type='budget', bound to an expense
category) and savings goals (type='savings'). progress is the running spend or
contribution toward amount. Status is derived on read, never stored:

    expired   now is past end_date
    exceeded  progress >= amount
    warning   progress >= alert_threshold percent of amount
    active    otherwise

Author: Spendwise contributors
License: MIT
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from .constants import (
    BUDGET_PERIODS,
    BUDGET_STATUSES,
    BUDGET_TYPES,
    DEFAULT_ALERT_THRESHOLD,
    EXPENSE_CATEGORIES,
    MAX_BUDGET_DESCRIPTION_LENGTH,
    RECENT_BUDGET_TRANSACTIONS,
)
from .intervals import period_end

logger = logging.getLogger(__name__)

BUDGET_COLUMNS = (
    "type", "category", "amount", "period", "start_date", "end_date",
    "progress", "description", "alert_threshold",
)


# =============================================================================
# DERIVED STATE
# =============================================================================

def progress_percentage(budget):
    """Unrounded progress as a percentage of amount."""
    if budget["amount"] <= 0:
        return Decimal("0")
    return budget["progress"] / budget["amount"] * 100


def is_expired(budget, now):
    return budget["end_date"] < now


def budget_status(budget, now):
    if is_expired(budget, now):
        return "expired"
    percentage = progress_percentage(budget)
    if percentage >= 100:
        return "exceeded"
    if percentage >= budget["alert_threshold"]:
        return "warning"
    return "active"


def should_send_alert(budget, now):
    """A spending budget past its threshold that has not alerted this period."""
    return (
        budget["type"] == "budget"
        and not budget["alert_sent"]
        and not is_expired(budget, now)
        and progress_percentage(budget) >= budget["alert_threshold"]
    )


def with_budget_stats(budget, now):
    budget["percentage"] = int(progress_percentage(budget).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    budget["remaining"] = max(Decimal("0.00"), budget["amount"] - budget["progress"])
    budget["status"] = budget_status(budget, now)
    return budget


class BudgetMethods:
    """Budget and savings goal operations for FinanceEngine."""

    def _fetch_budget(self, cursor, user_id, budget_id):
        cursor.execute(
            "SELECT * FROM budgets WHERE budget_id = ? AND user_id = ?",
            (budget_id, user_id)
        )
        return self._budget_from_row(cursor.fetchone())

    @staticmethod
    def _parse_threshold(value):
        try:
            threshold = int(value)
        except (TypeError, ValueError):
            raise ValueError("Alert threshold must be a whole number") from None
        if not 0 <= threshold <= 100:
            raise ValueError("Alert threshold must be between 0 and 100")
        return threshold

    @staticmethod
    def _clean_description(value):
        description = (value or "").strip()
        if len(description) > MAX_BUDGET_DESCRIPTION_LENGTH:
            raise ValueError(f"Description cannot exceed {MAX_BUDGET_DESCRIPTION_LENGTH} characters")
        return description or None

    def _budget_values(self, fields):
        values = []
        for column in BUDGET_COLUMNS:
            value = fields[column]
            if column in ("amount", "progress"):
                value = self._to_money_str(value)
            elif column in ("start_date", "end_date"):
                value = self._to_datetime_str(value)
            values.append(value)
        return values

    # =============================================================================
    # BUDGET CRUD
    # =============================================================================

    def create_budget(self, user_id, data, now=None):
        """
        Create a spending budget or a savings goal.

        Spending budgets need an expense category, and only one active budget may
        exist per category and period. end_date defaults to one period after
        start_date (default: now).

        Args:
            user_id (int): Owner
            data (dict): type ('budget' | 'savings'), category, amount, period,
                         start_date, end_date, progress, description, alert_threshold
            now (datetime.datetime, optional): Clock override

        Returns:
            tuple: (True, budget dict with percentage/remaining/status)
                   or (False, error message)

        Example:
            ok, budget = engine.create_budget(1, {
                "type": "budget", "category": "food", "amount": 600, "period": "monthly",
            })
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            budget_type = data.get("type") or "budget"
            if budget_type not in BUDGET_TYPES:
                raise ValueError("Type must be 'budget' or 'savings'")
            period = data.get("period") or "monthly"
            if period not in BUDGET_PERIODS:
                raise ValueError(f"Period must be one of: {', '.join(BUDGET_PERIODS)}")

            category = None
            if budget_type == "budget":
                category = (data.get("category") or "").strip().lower()
                if not category:
                    raise ValueError("Category is required for budgets")
                if category not in EXPENSE_CATEGORIES:
                    raise ValueError(f"Invalid expense category '{category}'")

            amount = self._parse_amount(data.get("amount"))
            progress = self._parse_amount(data.get("progress") or 0, allow_zero=True)
            if progress > amount:
                raise ValueError("Progress cannot exceed the target amount")

            start_date = self._parse_datetime(data.get("start_date")) or now
            end_date = self._parse_datetime(data.get("end_date")) or period_end(start_date, period)
            if end_date < start_date:
                raise ValueError("End date must be on or after start date")

            threshold = data.get("alert_threshold")
            threshold = DEFAULT_ALERT_THRESHOLD if threshold in (None, "") else self._parse_threshold(threshold)

            if budget_type == "budget":
                cursor.execute(
                    "SELECT budget_id FROM budgets WHERE user_id = ? AND type = 'budget' "
                    "AND category = ? AND period = ? AND end_date >= ?",
                    (user_id, category, period, self._to_datetime_str(now))
                )
                if cursor.fetchone():
                    return False, f"Cannot create budget: an active {period} budget for '{category}' already exists."

            fields = {
                "type": budget_type,
                "category": category,
                "amount": amount,
                "period": period,
                "start_date": start_date,
                "end_date": end_date,
                "progress": progress,
                "description": self._clean_description(data.get("description")),
                "alert_threshold": threshold,
            }
            cursor.execute(
                f"INSERT INTO budgets (user_id, {', '.join(BUDGET_COLUMNS)}) "
                f"VALUES (?, {', '.join('?' for _ in BUDGET_COLUMNS)})",
                [user_id] + self._budget_values(fields)
            )
            budget_id = cursor.lastrowid
            conn.commit()
            logger.info("[BUDGET] Created %s %s (id=%s, amount=%s)", budget_type, category or "goal", budget_id, amount)
            return True, with_budget_stats(self._fetch_budget(cursor, user_id, budget_id), now)
        except ValueError as e:
            conn.rollback()
            return False, str(e)
        except Exception as e:
            conn.rollback()
            logger.exception("[BUDGET] Failed to create budget for user %s", user_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

    def get_budgets(self, user_id, filters=None, now=None):
        """
        List budgets and savings goals with derived percentage, remaining and status.

        Args:
            filters (dict, optional): type, category, period, status
        """
        now = self.resolve_now(now)
        filters = filters or {}
        where = ["user_id = ?"]
        params = [user_id]
        for column in ("type", "category", "period"):
            if filters.get(column):
                where.append(f"{column} = ?")
                params.append(filters[column])

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                f"SELECT * FROM budgets WHERE {' AND '.join(where)} ORDER BY budget_id DESC",
                params
            )
            budgets = [with_budget_stats(self._budget_from_row(row), now) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

        status = filters.get("status")
        if status in BUDGET_STATUSES:
            budgets = [budget for budget in budgets if budget["status"] == status]
        return budgets

    def get_budget(self, user_id, budget_id, now=None):
        """One budget plus its most recent contributing transactions, or None."""
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            budget = self._fetch_budget(cursor, user_id, budget_id)
            if budget is None:
                return None

            if budget["type"] == "budget":
                cursor.execute(
                    "SELECT * FROM transactions WHERE user_id = ? AND is_recurring = 0 "
                    "AND type = 'expense' AND category = ? AND transaction_date >= ? AND transaction_date <= ? "
                    "ORDER BY transaction_date DESC, transaction_id DESC LIMIT ?",
                    (user_id, budget["category"], self._to_datetime_str(budget["start_date"]),
                     self._to_datetime_str(budget["end_date"]), RECENT_BUDGET_TRANSACTIONS)
                )
            else:
                cursor.execute(
                    "SELECT * FROM transactions WHERE user_id = ? AND is_recurring = 0 "
                    "AND savings_goal_id = ? ORDER BY transaction_date DESC, transaction_id DESC LIMIT ?",
                    (user_id, budget_id, RECENT_BUDGET_TRANSACTIONS)
                )
            budget["recent_transactions"] = [self._transaction_from_row(row) for row in cursor.fetchall()]
            return with_budget_stats(budget, now)
        finally:
            cursor.close()
            conn.close()

    def update_budget(self, user_id, budget_id, updates, now=None):
        """
        Update a budget that has not expired.

        Changing start_date or period without an explicit end_date moves end_date
        to one period after the (new) start. An explicit progress value must not
        exceed the amount.

        Returns:
            tuple: (True, budget dict) or (False, error message)
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            budget = self._fetch_budget(cursor, user_id, budget_id)
            if budget is None:
                return False, "Budget not found."
            if is_expired(budget, now):
                return False, "Cannot update an expired budget."

            fields = {column: budget[column] for column in BUDGET_COLUMNS}

            if "amount" in updates:
                fields["amount"] = self._parse_amount(updates.get("amount"))
            if "progress" in updates:
                fields["progress"] = self._parse_amount(updates.get("progress") or 0, allow_zero=True)
                if fields["progress"] > fields["amount"]:
                    raise ValueError("Progress cannot exceed the target amount")
            if updates.get("category") and budget["type"] == "budget":
                category = str(updates["category"]).strip().lower()
                if category not in EXPENSE_CATEGORIES:
                    raise ValueError(f"Invalid expense category '{category}'")
                fields["category"] = category
            if updates.get("period"):
                if updates["period"] not in BUDGET_PERIODS:
                    raise ValueError(f"Period must be one of: {', '.join(BUDGET_PERIODS)}")
                fields["period"] = updates["period"]
            if updates.get("start_date"):
                fields["start_date"] = self._parse_datetime(updates["start_date"])
            if updates.get("end_date"):
                fields["end_date"] = self._parse_datetime(updates["end_date"])
            elif updates.get("start_date") or updates.get("period"):
                fields["end_date"] = period_end(fields["start_date"], fields["period"])
            if fields["end_date"] < fields["start_date"]:
                raise ValueError("End date must be on or after start date")
            if "description" in updates:
                fields["description"] = self._clean_description(updates.get("description"))
            if updates.get("alert_threshold") not in (None, ""):
                fields["alert_threshold"] = self._parse_threshold(updates["alert_threshold"])

            assignments = ", ".join(f"{column} = ?" for column in BUDGET_COLUMNS)
            cursor.execute(
                f"UPDATE budgets SET {assignments}, updated_at = CURRENT_TIMESTAMP "
                f"WHERE budget_id = ? AND user_id = ?",
                self._budget_values(fields) + [budget_id, user_id]
            )
            conn.commit()
            return True, with_budget_stats(self._fetch_budget(cursor, user_id, budget_id), now)
        except ValueError as e:
            conn.rollback()
            return False, str(e)
        except Exception as e:
            conn.rollback()
            logger.exception("[BUDGET] Failed to update budget %s", budget_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

    def delete_budget(self, user_id, budget_id):
        """Delete a budget. Transactions linked to a deleted savings goal lose the link."""
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "DELETE FROM budgets WHERE budget_id = ? AND user_id = ?",
                (budget_id, user_id)
            )
            if cursor.rowcount == 0:
                return False, "Budget not found."
            conn.commit()
            return True, "Budget deleted."
        except Exception as e:
            conn.rollback()
            logger.exception("[BUDGET] Failed to delete budget %s", budget_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

    def add_progress(self, user_id, budget_id, amount, now=None):
        """
        Manually add to a budget's progress (e.g. a savings contribution).

        The amount must be positive, the budget must not be expired, and the new
        progress must not exceed the target. Crossing a spending budget's alert
        threshold sends the alert right away (best effort).

        Returns:
            tuple: (True, budget dict) or (False, error message)
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            amount = self._parse_amount(amount)
            budget = self._fetch_budget(cursor, user_id, budget_id)
            if budget is None:
                return False, "Budget not found."
            if is_expired(budget, now):
                return False, "Cannot add progress to an expired budget."

            progress = budget["progress"] + amount
            if progress > budget["amount"]:
                raise ValueError("Progress cannot exceed the target amount")

            cursor.execute(
                "UPDATE budgets SET progress = ?, updated_at = CURRENT_TIMESTAMP WHERE budget_id = ?",
                (self._to_money_str(progress), budget_id)
            )
            conn.commit()
            budget = self._fetch_budget(cursor, user_id, budget_id)
        except ValueError as e:
            conn.rollback()
            return False, str(e)
        except Exception as e:
            conn.rollback()
            logger.exception("[BUDGET] Failed to add progress to budget %s", budget_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

        if should_send_alert(budget, now) and self.send_budget_alert(budget):
            self.mark_alert_sent(budget_id)
            budget["alert_sent"] = True
        return True, with_budget_stats(budget, now)

    def get_budget_summary(self, user_id, now=None):
        """
        Totals across budgets and savings goals that have not expired.

        Returns:
            dict: {budgets: {total, total_budgeted, total_spent, remaining,
                             by_status: {active, warning, exceeded}},
                   savings: {total, total_goal, total_progress, remaining}}
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "SELECT * FROM budgets WHERE user_id = ? AND end_date >= ?",
                (user_id, self._to_datetime_str(now))
            )
            rows = [with_budget_stats(self._budget_from_row(row), now) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

        budgets = [row for row in rows if row["type"] == "budget"]
        savings = [row for row in rows if row["type"] == "savings"]

        total_budgeted = sum((b["amount"] for b in budgets), Decimal("0.00"))
        total_spent = sum((b["progress"] for b in budgets), Decimal("0.00"))
        total_goal = sum((s["amount"] for s in savings), Decimal("0.00"))
        total_progress = sum((s["progress"] for s in savings), Decimal("0.00"))

        return {
            "budgets": {
                "total": len(budgets),
                "total_budgeted": total_budgeted,
                "total_spent": total_spent,
                "remaining": total_budgeted - total_spent,
                "by_status": {
                    status: sum(1 for b in budgets if b["status"] == status)
                    for status in ("active", "warning", "exceeded")
                },
            },
            "savings": {
                "total": len(savings),
                "total_goal": total_goal,
                "total_progress": total_progress,
                "remaining": total_goal - total_progress,
            },
        }

    # =============================================================================
    # ALERT & RESET PRIMITIVES (used by jobs.check_budget_alerts / reset_expired_budgets)
    # =============================================================================

    def get_alert_candidates(self, now=None):
        """Spending budgets that have not alerted yet and whose period is still open."""
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "SELECT * FROM budgets WHERE type = 'budget' AND alert_sent = 0 AND end_date >= ? "
                "ORDER BY budget_id",
                (self._to_datetime_str(self.resolve_now(now)),)
            )
            return [self._budget_from_row(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

    def recompute_progress(self, budget):
        """
        Rebuild progress from the expense transactions inside the budget window.

        The sum replaces whatever the incremental ledger accumulated. Returns the
        persisted Decimal.
        """
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "SELECT amount FROM transactions WHERE user_id = ? AND is_recurring = 0 "
                "AND type = 'expense' AND category = ? AND transaction_date >= ? AND transaction_date <= ?",
                (budget["user_id"], budget["category"],
                 self._to_datetime_str(budget["start_date"]), self._to_datetime_str(budget["end_date"]))
            )
            progress = sum((self._from_money_str(row["amount"]) for row in cursor.fetchall()), Decimal("0.00"))
            cursor.execute(
                "UPDATE budgets SET progress = ?, updated_at = CURRENT_TIMESTAMP WHERE budget_id = ?",
                (self._to_money_str(progress), budget["budget_id"])
            )
            conn.commit()
            return progress
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def mark_alert_sent(self, budget_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "UPDATE budgets SET alert_sent = 1, updated_at = CURRENT_TIMESTAMP WHERE budget_id = ?",
                (budget_id,)
            )
            conn.commit()
        finally:
            cursor.close()
            conn.close()

    def send_budget_alert(self, budget, notifier=None):
        """
        Notify the budget owner that the alert threshold was reached.

        Returns:
            bool: True only when the notifier reports success. Failures are logged.
        """
        notifier = notifier or self.notifier
        if notifier is None:
            logger.warning("[ALERT] No notifier configured; budget %s not alerted", budget["budget_id"])
            return False

        user = self.get_user(budget["user_id"])
        if not user or not user.get("email"):
            logger.warning("[ALERT] User %s has no email; budget %s not alerted",
                           budget["user_id"], budget["budget_id"])
            return False

        try:
            sent = notifier.send_budget_alert(user["email"], budget["category"], budget["progress"], budget["amount"])
        except Exception:
            logger.exception("[ALERT] Notifier raised for budget %s", budget["budget_id"])
            return False
        if not sent:
            logger.warning("[ALERT] Notifier failed for budget %s", budget["budget_id"])
        return bool(sent)

    def get_expired_budgets(self, now=None):
        """Spending budgets whose end_date has passed."""
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "SELECT * FROM budgets WHERE type = 'budget' AND end_date < ? ORDER BY budget_id",
                (self._to_datetime_str(self.resolve_now(now)),)
            )
            return [self._budget_from_row(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

    def reset_budget(self, budget, now=None):
        """Roll a budget into a fresh period starting now, with zero progress."""
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "UPDATE budgets SET start_date = ?, end_date = ?, progress = '0.00', alert_sent = 0, "
                "updated_at = CURRENT_TIMESTAMP WHERE budget_id = ?",
                (self._to_datetime_str(now), self._to_datetime_str(period_end(now, budget["period"])),
                 budget["budget_id"])
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()
