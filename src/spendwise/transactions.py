"""
Spendwise - Transactions

Create, read, update, delete and search concrete income/expense transactions.
Every committed write is followed by the matching ledger adjustment on the
owner's budgets (see ledger.py); a ledger failure never undoes the write.

Author: Spendwise contributors
License: MIT
"""

import json
import logging
import math

from .constants import (
    CATEGORIES,
    DEFAULT_PAGE_SIZE,
    FALLBACK_CATEGORY,
    MAX_DESCRIPTION_LENGTH,
    MAX_PAGE_SIZE,
    MAX_TAG_LENGTH,
    SEARCH_LIMIT,
    TRANSACTION_TYPES,
)

logger = logging.getLogger(__name__)

# Fields whose change moves the category budget, and the savings goal
CATEGORY_LEDGER_FIELDS = ("type", "amount", "category")
SAVINGS_LEDGER_FIELDS = ("amount", "savings_goal_id")

TRANSACTION_COLUMNS = (
    "type", "amount", "category", "description", "transaction_date", "tags",
    "merchant", "payment_method", "notes", "savings_goal_id", "receipt_id", "ai_categorized",
)


class TransactionMethods:
    """Transaction CRUD for FinanceEngine."""

    # =============================================================================
    # INPUT VALIDATION
    # =============================================================================

    @staticmethod
    def _clean_tags(tags):
        if tags is None:
            return []
        if isinstance(tags, str):
            tags = tags.split(",")
        if not isinstance(tags, (list, tuple)):
            raise ValueError("Tags must be a list of strings")
        cleaned = []
        for tag in tags:
            tag = str(tag).strip()
            if not tag:
                continue
            if len(tag) > MAX_TAG_LENGTH:
                raise ValueError(f"Tags cannot exceed {MAX_TAG_LENGTH} characters")
            cleaned.append(tag)
        return cleaned

    @staticmethod
    def _check_category(txn_type, category):
        if category not in CATEGORIES[txn_type]:
            raise ValueError(f"Invalid category '{category}' for {txn_type} transactions")

    def _clean_transaction_fields(self, data, partial=False):
        """
        Validate client input and map it onto transactions columns.

        With partial=False, type and amount are required (create). With
        partial=True only the keys present in data are returned (update).

        Raises:
            ValueError: On any malformed field
        """
        fields = {}

        if "type" in data or not partial:
            txn_type = data.get("type")
            if txn_type not in TRANSACTION_TYPES:
                raise ValueError("Type must be 'income' or 'expense'")
            fields["type"] = txn_type

        if "amount" in data or not partial:
            fields["amount"] = self._parse_amount(data.get("amount"))

        if data.get("category"):
            fields["category"] = str(data["category"]).strip().lower()

        if "description" in data:
            description = (data.get("description") or "").strip()
            if len(description) > MAX_DESCRIPTION_LENGTH:
                raise ValueError(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")
            fields["description"] = description or None

        date_value = data.get("date", data.get("transaction_date"))
        if date_value:
            fields["transaction_date"] = self._parse_datetime(date_value)

        if "tags" in data:
            fields["tags"] = self._clean_tags(data.get("tags"))

        metadata = data.get("metadata") or {}
        for key in ("merchant", "payment_method", "notes"):
            if key in data:
                fields[key] = data[key] or None
            elif key in metadata:
                fields[key] = metadata[key] or None

        if "savings_goal_id" in data:
            goal_id = data.get("savings_goal_id")
            try:
                fields["savings_goal_id"] = int(goal_id) if goal_id not in (None, "") else None
            except (TypeError, ValueError):
                raise ValueError("Invalid savings goal id") from None

        if "receipt_id" in data:
            receipt_id = data.get("receipt_id")
            try:
                fields["receipt_id"] = int(receipt_id) if receipt_id not in (None, "") else None
            except (TypeError, ValueError):
                raise ValueError("Invalid receipt id") from None

        return fields

    def _resolve_category(self, fields):
        """Fill in a missing category with the categorizer, or the type's fallback."""
        if fields.get("category"):
            fields["ai_categorized"] = 0
            return
        txn_type = fields["type"]
        description = fields.get("description")
        if self.categorizer is not None and description:
            category, used_ai = self.categorizer.categorize(description, txn_type)
            fields["category"] = category
            fields["ai_categorized"] = self._to_bool_int(used_ai)
        else:
            fields["category"] = FALLBACK_CATEGORY[txn_type]
            fields["ai_categorized"] = 0

    def _check_savings_goal(self, cursor, user_id, goal_id):
        if goal_id is None:
            return
        cursor.execute(
            "SELECT budget_id FROM budgets WHERE budget_id = ? AND user_id = ? AND type = 'savings'",
            (goal_id, user_id)
        )
        if cursor.fetchone() is None:
            raise ValueError(f"Unknown savings goal: {goal_id}")

    def _check_receipt(self, cursor, user_id, receipt_id):
        if receipt_id is None:
            return
        cursor.execute(
            "SELECT receipt_id FROM receipts WHERE receipt_id = ? AND user_id = ?",
            (receipt_id, user_id)
        )
        if cursor.fetchone() is None:
            raise ValueError(f"Unknown receipt: {receipt_id}")

    def _column_value(self, column, value):
        """Convert a cleaned field to its SQLite storage form."""
        if column == "amount":
            return self._to_money_str(value)
        if column in ("transaction_date", "next_occurrence", "end_date"):
            return self._to_datetime_str(value)
        if column == "tags":
            return json.dumps(value or [])
        return value

    def _fetch_transaction(self, cursor, user_id, transaction_id):
        cursor.execute(
            "SELECT * FROM transactions WHERE transaction_id = ? AND user_id = ?",
            (transaction_id, user_id)
        )
        return self._transaction_from_row(cursor.fetchone())

    # =============================================================================
    # TRANSACTION CRUD
    # =============================================================================

    def create_transaction(self, user_id, data, now=None):
        """
        Record a concrete income or expense transaction.

        A missing category is filled in by the categorizer (or the type's fallback
        category). Expense transactions then add their amount to the owner's active
        category budget; a savings link adds it to the savings goal.

        Args:
            user_id (int): Owner of the transaction
            data (dict): type, amount, category, description, date, tags,
                         metadata {merchant, payment_method, notes}, savings_goal_id,
                         receipt_id
            now (datetime.datetime, optional): Clock override

        Returns:
            tuple: (True, transaction dict) or (False, error message)

        Example:
            ok, txn = engine.create_transaction(1, {
                "type": "expense", "amount": "42.50", "category": "food",
                "description": "Groceries",
            })
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            fields = self._clean_transaction_fields(data)
            fields.setdefault("transaction_date", now)
            fields.setdefault("tags", [])
            self._resolve_category(fields)
            self._check_category(fields["type"], fields["category"])
            self._check_savings_goal(cursor, user_id, fields.get("savings_goal_id"))
            self._check_receipt(cursor, user_id, fields.get("receipt_id"))

            columns = [column for column in TRANSACTION_COLUMNS if column in fields]
            cursor.execute(
                f"INSERT INTO transactions (user_id, {', '.join(columns)}) "
                f"VALUES (?, {', '.join('?' for _ in columns)})",
                [user_id] + [self._column_value(column, fields[column]) for column in columns]
            )
            transaction_id = cursor.lastrowid
            conn.commit()

            txn = self._fetch_transaction(cursor, user_id, transaction_id)
        except ValueError as e:
            conn.rollback()
            return False, str(e)
        except Exception as e:
            conn.rollback()
            logger.exception("[TXN] Failed to create transaction for user %s", user_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

        logger.info("[TXN] Created %s %s %s (id=%s)", txn["type"], txn["amount"], txn["category"], transaction_id)
        self.record_ledger_effects(txn, 1, now=now)
        return True, txn

    def get_transaction(self, user_id, transaction_id):
        """Return one transaction (template or instance) owned by user_id, or None."""
        conn, cursor = self._get_db_connection()
        try:
            return self._fetch_transaction(cursor, user_id, transaction_id)
        finally:
            cursor.close()
            conn.close()

    def get_transactions(self, user_id, filters=None):
        """
        List concrete transactions with filtering, sorting and pagination.

        Recurring templates are excluded; they are listed by get_recurring_list().

        Args:
            user_id (int): Owner
            filters (dict, optional): type, category, start_date, end_date,
                min_amount, max_amount, template_id, sort_by ('date' | 'amount'),
                order ('asc' | 'desc'), page, limit

        Returns:
            dict: {transactions, total, page, limit, pages}

        Raises:
            ValueError: On malformed filter values
        """
        filters = filters or {}
        where = ["user_id = ?", "is_recurring = 0"]
        params = [user_id]

        if filters.get("type"):
            where.append("type = ?")
            params.append(filters["type"])
        if filters.get("category"):
            where.append("category = ?")
            params.append(filters["category"])
        if filters.get("start_date"):
            where.append("transaction_date >= ?")
            params.append(self._to_datetime_str(self._parse_datetime(filters["start_date"])))
        if filters.get("end_date"):
            where.append("transaction_date <= ?")
            params.append(self._to_datetime_str(self._parse_datetime(filters["end_date"])))
        if filters.get("min_amount") not in (None, ""):
            where.append("CAST(amount AS REAL) >= ?")
            params.append(float(self._parse_amount(filters["min_amount"], allow_zero=True)))
        if filters.get("max_amount") not in (None, ""):
            where.append("CAST(amount AS REAL) <= ?")
            params.append(float(self._parse_amount(filters["max_amount"], allow_zero=True)))
        if filters.get("template_id"):
            where.append("template_id = ?")
            params.append(int(filters["template_id"]))

        sort_column = "CAST(amount AS REAL)" if filters.get("sort_by") == "amount" else "transaction_date"
        order = "ASC" if str(filters.get("order", "desc")).lower() == "asc" else "DESC"
        page = max(1, int(filters.get("page") or 1))
        limit = min(MAX_PAGE_SIZE, max(1, int(filters.get("limit") or DEFAULT_PAGE_SIZE)))

        where_sql = " AND ".join(where)
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(f"SELECT COUNT(*) AS total FROM transactions WHERE {where_sql}", params)
            total = cursor.fetchone()["total"]

            cursor.execute(
                f"SELECT * FROM transactions WHERE {where_sql} "
                f"ORDER BY {sort_column} {order}, transaction_id {order} LIMIT ? OFFSET ?",
                params + [limit, (page - 1) * limit]
            )
            transactions = [self._transaction_from_row(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

        return {
            "transactions": transactions,
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if total else 0,
        }

    def update_transaction(self, user_id, transaction_id, updates, now=None):
        """
        Update a concrete transaction.

        When type, amount or category changes, the old effect on the category
        budget is reversed and the new one applied. The savings goal is adjusted
        the same way, but only when the amount or the savings link changes.

        Returns:
            tuple: (True, transaction dict) or (False, error message)
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            existing = self._fetch_transaction(cursor, user_id, transaction_id)
            if existing is None:
                return False, "Transaction not found."
            if existing["is_recurring"]:
                return False, "Recurring templates are managed through the recurring endpoints."

            fields = self._clean_transaction_fields(updates, partial=True)
            if not fields:
                return False, "No fields to update."

            merged = dict(existing)
            merged.update(fields)
            if "type" in fields and "category" not in fields \
                    and existing["category"] not in CATEGORIES[merged["type"]]:
                merged["category"] = fields["category"] = FALLBACK_CATEGORY[merged["type"]]
            self._check_category(merged["type"], merged["category"])
            if "savings_goal_id" in fields:
                self._check_savings_goal(cursor, user_id, fields["savings_goal_id"])
            if "receipt_id" in fields:
                self._check_receipt(cursor, user_id, fields["receipt_id"])
            if "category" in fields:
                fields["ai_categorized"] = 0

            columns = [column for column in TRANSACTION_COLUMNS if column in fields]
            assignments = ", ".join(f"{column} = ?" for column in columns)
            cursor.execute(
                f"UPDATE transactions SET {assignments}, updated_at = CURRENT_TIMESTAMP "
                f"WHERE transaction_id = ? AND user_id = ?",
                [self._column_value(column, fields[column]) for column in columns]
                + [transaction_id, user_id]
            )
            conn.commit()
            updated = self._fetch_transaction(cursor, user_id, transaction_id)
        except ValueError as e:
            conn.rollback()
            return False, str(e)
        except Exception as e:
            conn.rollback()
            logger.exception("[TXN] Failed to update transaction %s", transaction_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

        category_changed = any(existing[field] != updated[field] for field in CATEGORY_LEDGER_FIELDS)
        savings_changed = any(existing[field] != updated[field] for field in SAVINGS_LEDGER_FIELDS)
        if category_changed or savings_changed:
            self.record_ledger_effects(existing, -1, now=now, category=category_changed, savings=savings_changed)
            self.record_ledger_effects(updated, 1, now=now, category=category_changed, savings=savings_changed)
        return True, updated

    def delete_transaction(self, user_id, transaction_id, now=None):
        """
        Delete a concrete transaction and reverse its effect on budgets.

        Returns:
            tuple: (success bool, message str)
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            existing = self._fetch_transaction(cursor, user_id, transaction_id)
            if existing is None:
                return False, "Transaction not found."
            if existing["is_recurring"]:
                return False, "Recurring templates are managed through the recurring endpoints."

            cursor.execute(
                "DELETE FROM transactions WHERE transaction_id = ? AND user_id = ?",
                (transaction_id, user_id)
            )
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.exception("[TXN] Failed to delete transaction %s", transaction_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

        self.record_ledger_effects(existing, -1, now=now)
        return True, "Transaction deleted."

    def search_transactions(self, user_id, query, filters=None):
        """
        Case-insensitive search over description, tags and merchant.

        Returns at most SEARCH_LIMIT concrete transactions, newest first.
        """
        filters = filters or {}
        pattern = f"%{(query or '').strip()}%"
        where = [
            "user_id = ?",
            "is_recurring = 0",
            "(description LIKE ? OR tags LIKE ? OR merchant LIKE ?)",
        ]
        params = [user_id, pattern, pattern, pattern]

        if filters.get("type"):
            where.append("type = ?")
            params.append(filters["type"])
        if filters.get("category"):
            where.append("category = ?")
            params.append(filters["category"])

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                f"SELECT * FROM transactions WHERE {' AND '.join(where)} "
                f"ORDER BY transaction_date DESC, transaction_id DESC LIMIT ?",
                params + [SEARCH_LIMIT]
            )
            return [self._transaction_from_row(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()
