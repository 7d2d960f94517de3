"""
Spendwise - SQLite Database Setup & Initialization

Creates the Spendwise schema. Safe to run repeatedly: every statement uses
IF NOT EXISTS.

Database Schema Overview:
------------------------
- users: Account credentials and the email used for budget alerts
- budgets: Spending limits (type='budget') and savings goals (type='savings')
- receipts: Uploaded receipt files and the data scanned from them
- transactions: Income/expense records. Recurring templates (is_recurring = 1)
  and the instances materialized from them (template_id) share this table.

Key Design Features:
- Foreign key constraints with cascade deletes for user data
- CHECK constraints for every enumerated column and money invariant
- TEXT storage for monetary values (preserves exact precision)
- Partial unique index on (template_id, transaction_date): one instance per
  template occurrence

Author: Spendwise contributors
License: MIT
"""

import logging
import sqlite3
from pathlib import Path

from . import config

logger = logging.getLogger(__name__)

EXPECTED_TABLES = ("users", "budgets", "receipts", "transactions")

SCHEMA = [
    (
        "users",
        """
        CREATE TABLE IF NOT EXISTS users (
            user_id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL UNIQUE,
            email TEXT,
            password_hash TEXT NOT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
        """,
    ),
    (
        "budgets",
        """
        CREATE TABLE IF NOT EXISTS budgets (
            budget_id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            type TEXT NOT NULL CHECK(type IN ('budget', 'savings')),
            category TEXT,
            amount TEXT NOT NULL CHECK(CAST(amount AS REAL) > 0),
            period TEXT NOT NULL CHECK(period IN ('weekly', 'monthly', 'yearly')),
            start_date TEXT NOT NULL,
            end_date TEXT NOT NULL,
            progress TEXT NOT NULL DEFAULT '0.00' CHECK(CAST(progress AS REAL) >= 0),
            description TEXT,
            alert_threshold INTEGER NOT NULL DEFAULT 80
                CHECK(alert_threshold BETWEEN 0 AND 100),
            alert_sent INTEGER NOT NULL DEFAULT 0,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
            CHECK(end_date >= start_date),
            CHECK(type = 'savings' OR category IS NOT NULL),
            FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
        )
        """,
    ),
    (
        "receipts",
        """
        CREATE TABLE IF NOT EXISTS receipts (
            receipt_id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            original_filename TEXT NOT NULL,
            mime_type TEXT NOT NULL,
            file_size INTEGER NOT NULL CHECK(file_size > 0),
            storage_path TEXT NOT NULL,
            ocr_data TEXT,
            processing_status TEXT NOT NULL DEFAULT 'pending'
                CHECK(processing_status IN ('pending', 'processing', 'completed', 'failed')),
            processing_error TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
        )
        """,
    ),
    (
        "transactions",
        """
        CREATE TABLE IF NOT EXISTS transactions (
            transaction_id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            type TEXT NOT NULL CHECK(type IN ('income', 'expense')),
            amount TEXT NOT NULL CHECK(CAST(amount AS REAL) > 0),
            category TEXT NOT NULL,
            description TEXT,
            transaction_date TEXT NOT NULL,
            is_recurring INTEGER NOT NULL DEFAULT 0,
            frequency TEXT CHECK(frequency IN ('daily', 'weekly', 'monthly', 'yearly')),
            next_occurrence TEXT,
            end_date TEXT,
            template_id INTEGER,
            savings_goal_id INTEGER,
            receipt_id INTEGER,
            tags TEXT NOT NULL DEFAULT '[]',
            merchant TEXT,
            payment_method TEXT,
            notes TEXT,
            ai_categorized INTEGER NOT NULL DEFAULT 0,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
            CHECK(is_recurring = 1 OR
                  (frequency IS NULL AND next_occurrence IS NULL AND end_date IS NULL)),
            CHECK(is_recurring = 0 OR frequency IS NOT NULL),
            FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE,
            FOREIGN KEY (template_id) REFERENCES transactions(transaction_id) ON DELETE SET NULL,
            FOREIGN KEY (savings_goal_id) REFERENCES budgets(budget_id) ON DELETE SET NULL,
            FOREIGN KEY (receipt_id) REFERENCES receipts(receipt_id) ON DELETE SET NULL
        )
        """,
    ),
]

# Columns added after the first release; created on databases that predate them
ADDED_COLUMNS = [
    ("transactions", "receipt_id", "INTEGER REFERENCES receipts(receipt_id) ON DELETE SET NULL"),
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_transactions_user_date "
    "ON transactions(user_id, transaction_date)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_user_category "
    "ON transactions(user_id, type, category)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_due "
    "ON transactions(is_recurring, next_occurrence)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_transactions_template_occurrence "
    "ON transactions(template_id, transaction_date) WHERE template_id IS NOT NULL",
    "CREATE INDEX IF NOT EXISTS idx_budgets_user_category "
    "ON budgets(user_id, type, category, period)",
    "CREATE INDEX IF NOT EXISTS idx_budgets_end_date ON budgets(end_date)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_receipt ON transactions(receipt_id)",
    "CREATE INDEX IF NOT EXISTS idx_receipts_user ON receipts(user_id, created_at)",
]


def get_db_path(db_path=None):
    """Return the path to the SQLite database file"""
    return Path(db_path or config.DATABASE_PATH)


def create_database(db_path=None):
    """
    Create the Spendwise SQLite database with all tables and indexes.

    Existing tables are left untouched. Use reset_database() to start fresh.

    Args:
        db_path (str | Path, optional): Database file. Defaults to DATABASE_PATH.

    Returns:
        Path: The database file that was initialized
    """
    db_path = get_db_path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    cursor = conn.cursor()
    cursor.execute("PRAGMA foreign_keys = ON;")

    try:
        for table, ddl in SCHEMA:
            cursor.execute(ddl)
            logger.debug("[DB] Table '%s' ready", table)
        for table, column, column_type in ADDED_COLUMNS:
            cursor.execute(f"PRAGMA table_info({table})")
            if column not in {row[1] for row in cursor.fetchall()}:
                cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")
                logger.info("[DB] Added column %s.%s", table, column)
        for ddl in INDEXES:
            cursor.execute(ddl)
        conn.commit()
        logger.info("[DB] Schema ready at %s", db_path)
    except sqlite3.Error:
        conn.rollback()
        logger.exception("[DB] Error creating database at %s", db_path)
        raise
    finally:
        cursor.close()
        conn.close()

    return db_path


def reset_database(db_path=None):
    """
    Delete the database file and recreate an empty schema.

    WARNING: This permanently deletes all data.
    """
    db_path = get_db_path(db_path)
    if db_path.exists():
        logger.warning("[DB] Deleting existing database at %s", db_path)
        db_path.unlink()
    return create_database(db_path)


def verify_schema(db_path=None):
    """Return True when the database exists and has every expected table."""
    db_path = get_db_path(db_path)
    if not db_path.exists():
        logger.error("[DB] Database does not exist: %s", db_path)
        return False

    conn = sqlite3.connect(str(db_path))
    try:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
        ).fetchall()
    finally:
        conn.close()

    existing = {row[0] for row in rows}
    missing = [table for table in EXPECTED_TABLES if table not in existing]
    for table in missing:
        logger.error("[DB] Table '%s' MISSING", table)
    return not missing
