"""
Spendwise - Recurring Transactions

Recurring templates live in the transactions table with is_recurring = 1.
Instances materialized from a template are ordinary rows pointing back at it
through template_id. This module covers the user-facing template operations
and the two primitives the materialization job builds on.

Author: Spendwise contributors
License: MIT
"""

import logging
import sqlite3

from .constants import FREQUENCIES, MAX_OCCURRENCE_COUNT
from .intervals import advance
from .recurrence import (
    ENDED,
    initial_next_occurrence,
    is_active,
    next_after,
    occurrences_remaining,
    recurrence_state,
    upcoming_occurrences,
)
from .transactions import TRANSACTION_COLUMNS

logger = logging.getLogger(__name__)

# Columns copied from a template onto each instance
INSTANCE_COLUMNS = (
    "type", "amount", "category", "description", "tags",
    "merchant", "payment_method", "notes", "savings_goal_id", "receipt_id", "ai_categorized",
)


class RecurringMethods:
    """Recurring template operations for FinanceEngine."""

    @staticmethod
    def _check_frequency(frequency):
        if frequency not in FREQUENCIES:
            raise ValueError(f"Frequency is required and must be one of: {', '.join(FREQUENCIES)}")

    def _with_recurrence_info(self, template, now):
        template["state"] = recurrence_state(template, now)
        template["is_active"] = template["state"] != ENDED
        template["occurrences_remaining"] = occurrences_remaining(template, now)
        return template

    def _fetch_template(self, cursor, user_id, template_id):
        cursor.execute(
            "SELECT * FROM transactions WHERE transaction_id = ? AND user_id = ? AND is_recurring = 1",
            (template_id, user_id)
        )
        return self._transaction_from_row(cursor.fetchone())

    # =============================================================================
    # TEMPLATE CRUD
    # =============================================================================

    def create_recurring(self, user_id, data, now=None):
        """
        Create a recurring template.

        The first occurrence is start_date (default: now). A template whose
        end_date is already before its first occurrence is created ENDED and
        never materializes an instance.

        Args:
            user_id (int): Owner
            data (dict): Transaction fields plus frequency (required),
                         start_date and end_date (optional)
            now (datetime.datetime, optional): Clock override

        Returns:
            tuple: (True, template dict) or (False, error message)

        Example:
            ok, rent = engine.create_recurring(1, {
                "type": "expense", "amount": 1200, "category": "housing",
                "description": "Rent", "frequency": "monthly",
                "start_date": "2024-01-01",
            })
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            frequency = data.get("frequency")
            self._check_frequency(frequency)

            fields = self._clean_transaction_fields(data)
            start = self._parse_datetime(data.get("start_date")) or fields.get("transaction_date") or now
            end_date = self._parse_datetime(data.get("end_date"))
            fields["transaction_date"] = start
            fields.setdefault("tags", [])
            self._resolve_category(fields)
            self._check_category(fields["type"], fields["category"])
            self._check_savings_goal(cursor, user_id, fields.get("savings_goal_id"))
            self._check_receipt(cursor, user_id, fields.get("receipt_id"))

            columns = [column for column in TRANSACTION_COLUMNS if column in fields]
            values = [self._column_value(column, fields[column]) for column in columns]
            columns += ["is_recurring", "frequency", "next_occurrence", "end_date"]
            values += [
                1,
                frequency,
                self._to_datetime_str(initial_next_occurrence(start, end_date)),
                self._to_datetime_str(end_date),
            ]
            cursor.execute(
                f"INSERT INTO transactions (user_id, {', '.join(columns)}) "
                f"VALUES (?, {', '.join('?' for _ in columns)})",
                [user_id] + values
            )
            template_id = cursor.lastrowid
            conn.commit()

            template = self._fetch_template(cursor, user_id, template_id)
            logger.info("[RECURRING] Created %s template %s (next=%s)",
                        frequency, template_id, template["next_occurrence"])
            return True, self._with_recurrence_info(template, now)
        except ValueError as e:
            conn.rollback()
            return False, str(e)
        except Exception as e:
            conn.rollback()
            logger.exception("[RECURRING] Failed to create template for user %s", user_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

    def get_recurring_list(self, user_id, status="all", now=None):
        """
        List a user's templates, soonest first.

        Args:
            status (str): 'all', 'active' or 'ended'
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "SELECT * FROM transactions WHERE user_id = ? AND is_recurring = 1 "
                "ORDER BY next_occurrence IS NULL, next_occurrence, transaction_id",
                (user_id,)
            )
            templates = [self._with_recurrence_info(self._transaction_from_row(row), now)
                         for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

        if status == "active":
            return [t for t in templates if t["is_active"]]
        if status == "ended":
            return [t for t in templates if not t["is_active"]]
        return templates

    def get_recurring(self, user_id, template_id, now=None):
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            template = self._fetch_template(cursor, user_id, template_id)
        finally:
            cursor.close()
            conn.close()
        return self._with_recurrence_info(template, now) if template else None

    def update_recurring(self, user_id, template_id, updates, now=None):
        """
        Update an active template. Ended templates cannot be updated.

        A frequency change restarts the schedule one period from now. Moving
        end_date before the next occurrence (or into the past) ends the series.

        Returns:
            tuple: (True, template dict) or (False, error message)
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            template = self._fetch_template(cursor, user_id, template_id)
            if template is None:
                return False, "Recurring transaction not found."
            if not is_active(template, now):
                return False, "Cannot update a recurring transaction that has ended."

            fields = self._clean_transaction_fields(updates, partial=True)
            fields.pop("transaction_date", None)

            frequency = updates.get("frequency")
            if frequency is not None and frequency != template["frequency"]:
                self._check_frequency(frequency)
                fields["frequency"] = frequency
                fields["next_occurrence"] = advance(now, frequency)
            if "end_date" in updates:
                fields["end_date"] = self._parse_datetime(updates.get("end_date"))
            if not fields:
                return False, "No fields to update."

            merged = dict(template)
            merged.update(fields)
            self._check_category(merged["type"], merged["category"])
            if "savings_goal_id" in fields:
                self._check_savings_goal(cursor, user_id, fields["savings_goal_id"])
            if "receipt_id" in fields:
                self._check_receipt(cursor, user_id, fields["receipt_id"])
            if recurrence_state(merged, now) == ENDED:
                fields["next_occurrence"] = None

            columns = [column for column in TRANSACTION_COLUMNS if column in fields]
            columns += [column for column in ("frequency", "next_occurrence", "end_date") if column in fields]
            assignments = ", ".join(f"{column} = ?" for column in columns)
            cursor.execute(
                f"UPDATE transactions SET {assignments}, updated_at = CURRENT_TIMESTAMP "
                f"WHERE transaction_id = ? AND user_id = ?",
                [self._column_value(column, fields[column]) for column in columns]
                + [template_id, user_id]
            )
            conn.commit()
            return True, self._with_recurrence_info(self._fetch_template(cursor, user_id, template_id), now)
        except ValueError as e:
            conn.rollback()
            return False, str(e)
        except Exception as e:
            conn.rollback()
            logger.exception("[RECURRING] Failed to update template %s", template_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

    def cancel_recurring(self, user_id, template_id, now=None):
        """
        End a series immediately: end_date = now, next_occurrence = None.

        Returns:
            tuple: (True, template dict) or (False, error message)
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            template = self._fetch_template(cursor, user_id, template_id)
            if template is None:
                return False, "Recurring transaction not found."
            if not is_active(template, now):
                return False, "Cannot cancel a recurring transaction that has already ended."

            cursor.execute(
                "UPDATE transactions SET end_date = ?, next_occurrence = NULL, "
                "updated_at = CURRENT_TIMESTAMP WHERE transaction_id = ?",
                (self._to_datetime_str(now), template_id)
            )
            conn.commit()
            logger.info("[RECURRING] Cancelled template %s", template_id)
            return True, self._with_recurrence_info(self._fetch_template(cursor, user_id, template_id), now)
        except Exception as e:
            conn.rollback()
            logger.exception("[RECURRING] Failed to cancel template %s", template_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

    def delete_recurring(self, user_id, template_id, now=None):
        """
        Delete a template and any of its instances dated after now.

        Past instances are kept; their template_id is cleared by the foreign key.
        Removed future instances have their budget effect reversed.

        Returns:
            tuple: (success bool, message str)
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            template = self._fetch_template(cursor, user_id, template_id)
            if template is None:
                return False, "Recurring transaction not found."

            cursor.execute(
                "SELECT * FROM transactions WHERE template_id = ? AND user_id = ? AND transaction_date > ?",
                (template_id, user_id, self._to_datetime_str(now))
            )
            future_instances = [self._transaction_from_row(row) for row in cursor.fetchall()]

            cursor.execute(
                "DELETE FROM transactions WHERE template_id = ? AND user_id = ? AND transaction_date > ?",
                (template_id, user_id, self._to_datetime_str(now))
            )
            cursor.execute(
                "DELETE FROM transactions WHERE transaction_id = ? AND user_id = ?",
                (template_id, user_id)
            )
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.exception("[RECURRING] Failed to delete template %s", template_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

        for instance in future_instances:
            self.record_ledger_effects(instance, -1, now=now)
        logger.info("[RECURRING] Deleted template %s and %d future instances", template_id, len(future_instances))
        return True, f"Recurring transaction deleted ({len(future_instances)} future instances removed)."

    def get_upcoming_instances(self, user_id, template_id, count=5, now=None):
        """
        Preview the next `count` occurrences of a template without persisting them.

        Returns:
            tuple: (True, list of {date, amount, type, category, description})
                   or (False, error message)
        """
        now = self.resolve_now(now)
        try:
            count = int(count)
        except (TypeError, ValueError):
            return False, "Count must be a whole number."
        if count < 1 or count > MAX_OCCURRENCE_COUNT:
            return False, f"Count must be between 1 and {MAX_OCCURRENCE_COUNT}."

        template = self.get_recurring(user_id, template_id, now=now)
        if template is None:
            return False, "Recurring transaction not found."
        return True, upcoming_occurrences(template, count, now)

    # =============================================================================
    # MATERIALIZATION PRIMITIVES (used by jobs.process_recurring_transactions)
    # =============================================================================

    def get_due_templates(self, now=None):
        """Templates with next_occurrence <= now whose end_date is unset or not yet passed."""
        now_str = self._to_datetime_str(self.resolve_now(now))
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                """
                SELECT * FROM transactions
                WHERE is_recurring = 1
                  AND next_occurrence IS NOT NULL
                  AND next_occurrence <= ?
                  AND (end_date IS NULL OR end_date >= ?)
                ORDER BY next_occurrence, transaction_id
                """,
                (now_str, now_str)
            )
            return [self._transaction_from_row(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

    def close_ended_templates(self, now=None):
        """Clear next_occurrence on templates whose end_date has passed. Returns the count."""
        now_str = self._to_datetime_str(self.resolve_now(now))
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                """
                UPDATE transactions SET next_occurrence = NULL, updated_at = CURRENT_TIMESTAMP
                WHERE is_recurring = 1
                  AND next_occurrence IS NOT NULL
                  AND end_date IS NOT NULL
                  AND (end_date < ? OR end_date < next_occurrence)
                """,
                (now_str,)
            )
            closed = cursor.rowcount
            conn.commit()
            return closed
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def materialize_occurrence(self, template, now=None):
        """
        Materialize the template's current occurrence and advance it, in one commit.

        The template is re-read first; if it has ended or already moved past the
        occurrence that was read, nothing happens. An instance that already exists
        for this (template, date) is not duplicated, but the template still advances.

        Returns:
            dict | None: The new instance, or None when nothing was created
        """
        now = self.resolve_now(now)
        conn, cursor = self._get_db_connection()
        try:
            current = self._fetch_template(cursor, template["user_id"], template["transaction_id"])
            if current is None or current["next_occurrence"] != template["next_occurrence"]:
                return None
            if recurrence_state(current, now) == ENDED:
                cursor.execute(
                    "UPDATE transactions SET next_occurrence = NULL, updated_at = CURRENT_TIMESTAMP "
                    "WHERE transaction_id = ?",
                    (current["transaction_id"],)
                )
                conn.commit()
                return None

            occurrence = current["next_occurrence"]
            instance_id = None
            try:
                cursor.execute(
                    f"INSERT INTO transactions (user_id, template_id, transaction_date, "
                    f"{', '.join(INSTANCE_COLUMNS)}) "
                    f"VALUES (?, ?, ?, {', '.join('?' for _ in INSTANCE_COLUMNS)})",
                    [current["user_id"], current["transaction_id"], self._to_datetime_str(occurrence)]
                    + [self._column_value(column, current[column]) for column in INSTANCE_COLUMNS]
                )
                instance_id = cursor.lastrowid
            except sqlite3.IntegrityError as e:
                if "UNIQUE" not in str(e):
                    raise
                logger.warning("[RECURRING] Template %s already has an instance on %s",
                               current["transaction_id"], occurrence)

            next_occurrence, end_date = next_after(current, now)
            cursor.execute(
                "UPDATE transactions SET next_occurrence = ?, end_date = ?, "
                "updated_at = CURRENT_TIMESTAMP WHERE transaction_id = ?",
                (self._to_datetime_str(next_occurrence), self._to_datetime_str(end_date),
                 current["transaction_id"])
            )
            conn.commit()

            if instance_id is None:
                return None
            return self._fetch_transaction(cursor, current["user_id"], instance_id)
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()
