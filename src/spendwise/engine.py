"""
Spendwise - Personal Finance Engine

FinanceEngine is the stateless facade used by the API, the CLI and the
background jobs. All state lives in SQLite; every method opens its own
connection. Methods are grouped by concern into mixins:

- UserMethods: registration and login (bcrypt)
- LedgerMethods: budget progress deltas (best effort)
- TransactionMethods: concrete income/expense transactions
- RecurringMethods: recurring templates and materialization primitives
- BudgetMethods: budgets, savings goals, alert/reset primitives
- AnalyticsMethods: reporting
- ReceiptMethods: receipt images, linking and scanning
- InsightMethods: AI categorization, insights, recommendations and chat

Conventions:
- Mutations return (success, payload_or_message) and never raise.
- Reads return dicts/lists, or None when the row does not exist.
- Time-dependent methods accept now=None for a clock override.

Example:
    engine = FinanceEngine("data/spendwise.db")
    engine.initialize_database()
    ok, msg, user_id = engine.register_user("alice", "s3cret", "alice@example.com")
    ok, txn = engine.create_transaction(user_id, {"type": "expense", "amount": 12, "category": "food"})

Author: Spendwise contributors
License: MIT
"""

import logging
from pathlib import Path

from .advisor import build_advisor
from .analytics import AnalyticsMethods
from .budgets import BudgetMethods
from .categorizer import build_categorizer
from .db import Database
from .insights import InsightMethods
from .ledger import LedgerMethods
from .notifier import build_notifier
from .receipts import ReceiptMethods
from .recurring import RecurringMethods
from .scanner import build_scanner
from .setup_sqlite import create_database
from .transactions import TransactionMethods
from .users import UserMethods

logger = logging.getLogger(__name__)


class FinanceEngine(
    UserMethods,
    LedgerMethods,
    TransactionMethods,
    RecurringMethods,
    BudgetMethods,
    AnalyticsMethods,
    ReceiptMethods,
    InsightMethods,
    Database,
):
    """
    Stateless personal finance engine.

    Args:
        db_path (str | Path, optional): SQLite file. Defaults to DATABASE_PATH.
        notifier: Object with send_budget_alert(recipient, category, spent, limit) -> bool
        categorizer: Object with categorize(description, type) -> (category, used_ai)
        scanner: Object with scan(content, mime_type) -> dict of receipt fields
        advisor: FinancialAdvisor-like object for insights, recommendations and chat
        receipts_dir (str | Path, optional): Receipt image storage. Defaults to a
            "receipts" directory beside the database file.
    """

    def __init__(self, db_path=None, notifier=None, categorizer=None, scanner=None, advisor=None,
                 receipts_dir=None):
        super().__init__(db_path)
        self.notifier = notifier
        self.categorizer = categorizer
        self.scanner = scanner
        self.advisor = advisor
        self.receipts_dir = Path(receipts_dir) if receipts_dir else self.db_path.parent / "receipts"

    def initialize_database(self):
        """Create the schema if it does not exist yet."""
        create_database(self.db_path)
        logger.info("[ENGINE] Using database %s", self.db_path)


def build_engine(settings):
    """FinanceEngine wired with the collaborators selected by the settings dict."""
    return FinanceEngine(
        settings["DATABASE_PATH"],
        notifier=build_notifier(settings),
        categorizer=build_categorizer(settings),
        scanner=build_scanner(settings),
        advisor=build_advisor(settings),
        receipts_dir=settings.get("RECEIPTS_DIR"),
    )
