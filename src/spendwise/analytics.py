"""
Spendwise - Analytics

Read-only aggregations over a user's concrete transactions. Recurring
templates are rules, not cash movements, so they never count here.

Author: Spendwise contributors
License: MIT
"""

import datetime
from collections import OrderedDict
from decimal import ROUND_HALF_UP, Decimal

from dateutil.relativedelta import relativedelta

from .intervals import advance

ZERO = Decimal("0.00")

TREND_FORMATS = {
    "daily": "%Y-%m-%d",
    "weekly": "%Y-W%U",
    "monthly": "%Y-%m",
    "yearly": "%Y",
}

UPCOMING_PER_TEMPLATE = 100


def _percent(part, whole):
    if not whole:
        return 0.0
    return float((part / whole * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _average(total, count):
    if not count:
        return ZERO
    return (total / count).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class AnalyticsMethods:
    """Reporting queries for FinanceEngine."""

    def _fetch_concrete(self, user_id, start_date=None, end_date=None, txn_type=None):
        where = ["user_id = ?", "is_recurring = 0"]
        params = [user_id]
        if start_date:
            where.append("transaction_date >= ?")
            params.append(self._to_datetime_str(self._parse_datetime(start_date)))
        if end_date:
            where.append("transaction_date <= ?")
            params.append(self._to_datetime_str(self._parse_datetime(end_date)))
        if txn_type:
            where.append("type = ?")
            params.append(txn_type)

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                f"SELECT * FROM transactions WHERE {' AND '.join(where)} ORDER BY transaction_date",
                params
            )
            return [self._transaction_from_row(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

    @staticmethod
    def _group_by_category(transactions):
        groups = {}
        for txn in transactions:
            group = groups.setdefault(txn["category"], {"amount": ZERO, "count": 0})
            group["amount"] += txn["amount"]
            group["count"] += 1
        return sorted(groups.items(), key=lambda item: item[1]["amount"], reverse=True)

    def get_overview(self, user_id, start_date=None, end_date=None):
        """
        Income/expense totals, balance, savings rate and the top 5 expense categories.

        Args:
            user_id (int): Owner
            start_date, end_date (str | datetime, optional): Inclusive date range

        Returns:
            dict: {income: {total, count, average}, expenses: {...}, balance,
                   savings_rate, top_categories: [{category, amount, count, percentage}]}
        """
        transactions = self._fetch_concrete(user_id, start_date, end_date)
        income = [t for t in transactions if t["type"] == "income"]
        expenses = [t for t in transactions if t["type"] == "expense"]

        income_total = sum((t["amount"] for t in income), ZERO)
        expense_total = sum((t["amount"] for t in expenses), ZERO)
        balance = income_total - expense_total

        return {
            "income": {
                "total": income_total,
                "count": len(income),
                "average": _average(income_total, len(income)),
            },
            "expenses": {
                "total": expense_total,
                "count": len(expenses),
                "average": _average(expense_total, len(expenses)),
            },
            "balance": balance,
            "savings_rate": _percent(balance, income_total),
            "top_categories": [
                {
                    "category": category,
                    "amount": group["amount"],
                    "count": group["count"],
                    "percentage": _percent(group["amount"], expense_total),
                }
                for category, group in self._group_by_category(expenses)[:5]
            ],
        }

    def get_category_breakdown(self, user_id, txn_type="expense", start_date=None, end_date=None):
        """Per-category totals for one transaction type, largest first."""
        transactions = self._fetch_concrete(user_id, start_date, end_date, txn_type=txn_type)
        total = sum((t["amount"] for t in transactions), ZERO)
        return [
            {
                "category": category,
                "amount": group["amount"],
                "count": group["count"],
                "average": _average(group["amount"], group["count"]),
                "percentage": _percent(group["amount"], total),
            }
            for category, group in self._group_by_category(transactions)
        ]

    def get_trends(self, user_id, period="monthly", txn_type=None, start_date=None, end_date=None):
        """
        Income, expenses and balance grouped by day, week, month or year.

        Raises:
            ValueError: If period is not one of TREND_FORMATS
        """
        if period not in TREND_FORMATS:
            raise ValueError(f"Period must be one of: {', '.join(TREND_FORMATS)}")
        fmt = TREND_FORMATS[period]

        buckets = OrderedDict()
        for txn in self._fetch_concrete(user_id, start_date, end_date, txn_type=txn_type):
            key = txn["transaction_date"].strftime(fmt)
            bucket = buckets.setdefault(key, {"income": ZERO, "expenses": ZERO, "count": 0})
            if txn["type"] == "income":
                bucket["income"] += txn["amount"]
            else:
                bucket["expenses"] += txn["amount"]
            bucket["count"] += 1

        return [
            {
                "period": key,
                "income": bucket["income"],
                "expenses": bucket["expenses"],
                "balance": bucket["income"] - bucket["expenses"],
                "count": bucket["count"],
            }
            for key, bucket in sorted(buckets.items())
        ]

    def get_monthly_report(self, user_id, year=None, month=None, now=None):
        """
        Overview, budget-vs-actual and daily spending for one calendar month.

        Budget-vs-actual covers spending budgets whose window overlaps the month,
        comparing each limit with the category's spend inside the month.
        """
        now = self.resolve_now(now)
        year = int(year or now.year)
        month = int(month or now.month)
        month_start = datetime.datetime(year, month, 1)
        month_end = month_start + relativedelta(months=1) - datetime.timedelta(seconds=1)

        overview = self.get_overview(user_id, month_start, month_end)
        expenses = self._fetch_concrete(user_id, month_start, month_end, txn_type="expense")

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "SELECT * FROM budgets WHERE user_id = ? AND type = 'budget' "
                "AND start_date <= ? AND end_date >= ? ORDER BY category",
                (user_id, self._to_datetime_str(month_end), self._to_datetime_str(month_start))
            )
            budgets = [self._budget_from_row(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

        budget_comparison = []
        for budget in budgets:
            spent = sum((t["amount"] for t in expenses if t["category"] == budget["category"]), ZERO)
            budget_comparison.append({
                "budget_id": budget["budget_id"],
                "category": budget["category"],
                "budgeted": budget["amount"],
                "spent": spent,
                "remaining": budget["amount"] - spent,
                "percentage": _percent(spent, budget["amount"]),
            })

        daily = {}
        for txn in expenses:
            day = txn["transaction_date"].day
            daily[day] = daily.get(day, ZERO) + txn["amount"]

        return {
            "month": month_start.strftime("%B %Y"),
            "overview": overview,
            "budget_comparison": budget_comparison,
            "daily_spending": [{"day": day, "amount": daily[day]} for day in sorted(daily)],
        }

    def get_upcoming_recurring(self, user_id, days=30, now=None):
        """Occurrences of every active template due within the next `days` days, soonest first."""
        now = self.resolve_now(now)
        horizon = now + datetime.timedelta(days=int(days))

        upcoming = []
        for template in self.get_recurring_list(user_id, status="active", now=now):
            occurrence = template["next_occurrence"]
            for _ in range(UPCOMING_PER_TEMPLATE):
                if occurrence > horizon:
                    break
                if template["end_date"] is not None and occurrence > template["end_date"]:
                    break
                upcoming.append({
                    "template_id": template["transaction_id"],
                    "date": occurrence,
                    "type": template["type"],
                    "amount": template["amount"],
                    "category": template["category"],
                    "description": template["description"],
                })
                occurrence = advance(occurrence, template["frequency"])

        upcoming.sort(key=lambda item: (item["date"], item["template_id"]))
        return upcoming
