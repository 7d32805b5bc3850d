DB_FILE = "envelope_budget.db"
DATE_FORMAT = "%Y-%m-%d"
MONTH_FORMAT = "%Y-%m"
BUSY_TIMEOUT_SECONDS = 30.0

SYSTEM_USER_ID = "system"

ROLES = ("admin", "member")

ACCOUNT_TYPES = ("checking", "savings", "credit")
STATUS_ACTIVE = "active"
STATUS_ARCHIVED = "archived"

TRANSACTION_TYPES = ("income", "expense")
STATUS_PENDING = "pending"
STATUS_CLEARED = "cleared"
TRANSACTION_STATUSES = (STATUS_PENDING, STATUS_CLEARED)

FREQUENCIES = ("daily", "weekly", "biweekly", "monthly", "quarterly", "yearly")
DAY_INTERVALS = {
    "daily": 1,
    "weekly": 7,
    "biweekly": 14,
}
MONTH_INTERVALS = {
    "monthly": 1,
    "quarterly": 3,
    "yearly": 12,
}

NAME_MAX_LENGTH = 100

DEFAULT_SETTINGS = [
    ("currency_symbol", "$"),
    ("default_period", "monthly"),
]
