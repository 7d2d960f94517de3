"""
Spendwise - SQLite access layer

Base class shared by every engine method group. It owns the database path and
the conversion helpers between Python values and SQLite TEXT/INTEGER storage.
It holds no other state: each operation opens its own connection and closes it
when done.

Author: Spendwise contributors
License: MIT
"""

import datetime
import json
import sqlite3
from decimal import Decimal, InvalidOperation
from pathlib import Path

from . import config

MONEY_QUANTUM = Decimal("0.01")
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class Database:
    """Connection handling and value conversion for SQLite-backed engines."""

    def __init__(self, db_path=None):
        self.db_path = Path(db_path or config.DATABASE_PATH)

    # =============================================================================
    # SQLITE HELPER METHODS
    # =============================================================================

    @staticmethod
    def _to_money_str(value):
        """Convert Decimal, int or float to a 2-decimal string for SQLite storage"""
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return str(value.quantize(MONEY_QUANTUM))

    @staticmethod
    def _from_money_str(value):
        """Convert string from SQLite to Decimal for calculations"""
        if value is None or value == "":
            return Decimal("0.00")
        return Decimal(str(value))

    @staticmethod
    def _to_bool_int(value):
        return 1 if value else 0

    @staticmethod
    def _from_bool_int(value):
        return bool(value)

    @staticmethod
    def _to_datetime_str(dt):
        """Convert datetime object to SQLite TEXT format"""
        if dt is None:
            return None
        if isinstance(dt, datetime.datetime):
            return dt.strftime(DATETIME_FORMAT)
        if isinstance(dt, datetime.date):
            return datetime.datetime.combine(dt, datetime.time()).strftime(DATETIME_FORMAT)
        return str(dt)

    @staticmethod
    def _from_datetime_str(value):
        """Convert SQLite TEXT to datetime object"""
        if value is None or value == "":
            return None
        if isinstance(value, str):
            try:
                return datetime.datetime.strptime(value, DATETIME_FORMAT)
            except ValueError:
                return datetime.datetime.strptime(value, "%Y-%m-%d")
        return value

    @staticmethod
    def _row_to_dict(row):
        """Convert sqlite3.Row to dictionary"""
        if row is None:
            return None
        return dict(row)

    # =============================================================================
    # INPUT PARSING
    # =============================================================================

    @staticmethod
    def resolve_now(now=None):
        """Current local time without microseconds, or the given override."""
        if now is not None:
            return now
        return datetime.datetime.now().replace(microsecond=0)

    @staticmethod
    def _parse_datetime(value):
        """
        Parse a client-supplied date or datetime into a naive local datetime.

        Accepts datetime/date objects and ISO 8601 strings ('2024-01-15',
        '2024-01-15T08:30:00', '2024-01-15T08:30:00Z').

        Raises:
            ValueError: If the value cannot be parsed
        """
        if value is None or value == "":
            return None
        if isinstance(value, datetime.datetime):
            parsed = value
        elif isinstance(value, datetime.date):
            parsed = datetime.datetime.combine(value, datetime.time())
        elif isinstance(value, str):
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.datetime.fromisoformat(text)
            except ValueError:
                raise ValueError(f"Invalid date: {value!r}") from None
        else:
            raise ValueError(f"Invalid date: {value!r}")

        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed.replace(microsecond=0)

    @staticmethod
    def _parse_amount(value, allow_zero=False):
        """
        Parse a money amount into a Decimal rounded to cents.

        Raises:
            ValueError: If the value is missing, not numeric, or not positive
        """
        if value is None or isinstance(value, bool):
            raise ValueError("Amount is required")
        try:
            amount = Decimal(str(value)).quantize(MONEY_QUANTUM)
        except (InvalidOperation, ValueError):
            raise ValueError(f"Invalid amount: {value!r}") from None
        if not amount.is_finite():
            raise ValueError(f"Invalid amount: {value!r}")
        if amount < 0 or (amount == 0 and not allow_zero):
            raise ValueError("Amount must be greater than zero")
        return amount

    # =============================================================================
    # ROW CONVERSION
    # =============================================================================

    def _transaction_from_row(self, row):
        """Typed dict for a transactions row (Decimal amount, datetimes, tag list)."""
        if row is None:
            return None
        txn = dict(row)
        txn["amount"] = self._from_money_str(txn["amount"])
        txn["transaction_date"] = self._from_datetime_str(txn["transaction_date"])
        txn["next_occurrence"] = self._from_datetime_str(txn.get("next_occurrence"))
        txn["end_date"] = self._from_datetime_str(txn.get("end_date"))
        txn["is_recurring"] = self._from_bool_int(txn["is_recurring"])
        txn["ai_categorized"] = self._from_bool_int(txn["ai_categorized"])
        txn["tags"] = json.loads(txn["tags"]) if txn.get("tags") else []
        return txn

    def _budget_from_row(self, row):
        """Typed dict for a budgets row (Decimal amount/progress, datetimes)."""
        if row is None:
            return None
        budget = dict(row)
        budget["amount"] = self._from_money_str(budget["amount"])
        budget["progress"] = self._from_money_str(budget["progress"])
        budget["start_date"] = self._from_datetime_str(budget["start_date"])
        budget["end_date"] = self._from_datetime_str(budget["end_date"])
        budget["alert_sent"] = self._from_bool_int(budget["alert_sent"])
        return budget

    def _receipt_from_row(self, row):
        """Typed dict for a receipts row (decoded ocr_data, datetimes)."""
        if row is None:
            return None
        receipt = dict(row)
        receipt["ocr_data"] = json.loads(receipt["ocr_data"]) if receipt.get("ocr_data") else None
        receipt["created_at"] = self._from_datetime_str(receipt.get("created_at"))
        receipt["updated_at"] = self._from_datetime_str(receipt.get("updated_at"))
        return receipt

    # =============================================================================
    # DATABASE CONNECTION
    # =============================================================================

    def _get_db_connection(self):
        """
        Establish a new database connection.

        Returns:
            tuple: (connection, cursor) - SQLite connection and cursor

        Note:
            Callers are responsible for closing the connection and cursor.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.row_factory = sqlite3.Row
        return conn, conn.cursor()
