"""Enumerations and limits shared by the engine, jobs and API."""

TRANSACTION_TYPES = ("income", "expense")

INCOME_CATEGORIES = ("salary", "freelance", "investment", "gift", "other")
EXPENSE_CATEGORIES = (
    "food",
    "housing",
    "transport",
    "utilities",
    "entertainment",
    "health",
    "education",
    "shopping",
    "subscriptions",
    "travel",
    "insurance",
    "debt",
    "miscellaneous",
)
CATEGORIES = {"income": INCOME_CATEGORIES, "expense": EXPENSE_CATEGORIES}
FALLBACK_CATEGORY = {"income": "other", "expense": "miscellaneous"}

FREQUENCIES = ("daily", "weekly", "monthly", "yearly")

BUDGET_TYPES = ("budget", "savings")
BUDGET_PERIODS = ("weekly", "monthly", "yearly")
BUDGET_STATUSES = ("active", "warning", "exceeded", "expired")
DEFAULT_ALERT_THRESHOLD = 80

MAX_DESCRIPTION_LENGTH = 500
MAX_BUDGET_DESCRIPTION_LENGTH = 200
MAX_TAG_LENGTH = 50

# Cap for counting remaining occurrences of a bounded series
MAX_OCCURRENCE_COUNT = 1000

RECENT_BUDGET_TRANSACTIONS = 10
SEARCH_LIMIT = 50
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Receipt uploads: accepted content types and the file extension stored for each
RECEIPT_TYPES = {"image/jpeg": ".jpg", "image/jpg": ".jpg", "image/png": ".png"}
RECEIPT_MAX_SIZE = 5 * 1024 * 1024
RECEIPT_STATUSES = ("pending", "processing", "completed", "failed")

MAX_CHAT_MESSAGE_LENGTH = 500
BULK_CATEGORIZE_LIMIT = 50
