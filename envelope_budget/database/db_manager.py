import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

import structlog

from envelope_budget.utils.constants import (
    BUSY_TIMEOUT_SECONDS,
    DB_FILE,
    DEFAULT_SETTINGS,
    SYSTEM_USER_ID,
)
from envelope_budget.utils.date_helpers import now_ts

logger = structlog.get_logger(__name__)


class DatabaseManager:
    """Owns the single SQLite connection and the transaction boundary.

    The connection runs in autocommit mode (``isolation_level=None``); every
    multi-statement write goes through :meth:`transaction`, which issues
    ``BEGIN IMMEDIATE`` so concurrent writers serialize on the database lock.
    """

    def __init__(self, db_path: str | None = None, timeout: float = BUSY_TIMEOUT_SECONDS):
        self.db_path = db_path or DB_FILE
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._depth = 0

    def get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                isolation_level=None,
                timeout=self.timeout,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    @contextmanager
    def transaction(self):
        """Run the enclosed block atomically. Nested blocks join the outer one."""
        conn = self.get_connection()
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield conn
            except BaseException:
                self._depth -= 1
                if outermost:
                    conn.execute("ROLLBACK")
                raise
            self._depth -= 1
            if outermost:
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error:
                    conn.execute("ROLLBACK")
                    raise

    def initialize(self):
        """Create schema and seed defaults."""
        with self.transaction() as conn:
            self._create_schema(conn)
            self._seed_defaults(conn)
        logger.info("database_initialized", db_path=self.db_path)

    def _create_schema(self, conn: sqlite3.Connection):
        # executescript() would COMMIT the open transaction, so run statement by statement.
        for statement in _SCHEMA.split(";"):
            if statement.strip():
                conn.execute(statement)

    def _seed_defaults(self, conn: sqlite3.Connection):
        for key, value in DEFAULT_SETTINGS:
            conn.execute(
                "INSERT OR IGNORE INTO app_settings(key, value) VALUES (?, ?)",
                (key, value),
            )

        # Identity used by unattended recurrence runs
        conn.execute(
            "INSERT OR IGNORE INTO user_roles(user_id, role, created_at) VALUES (?, 'admin', ?)",
            (SYSTEM_USER_ID, now_ts()),
        )

    def get_setting(self, key: str, default: str = "") -> str:
        conn = self.get_connection()
        row = conn.execute(
            "SELECT value FROM app_settings WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else default

    def set_setting(self, key: str, value: str):
        conn = self.get_connection()
        conn.execute(
            "INSERT OR REPLACE INTO app_settings(key, value) VALUES (?, ?)",
            (key, value),
        )

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None


_SCHEMA = """
    CREATE TABLE IF NOT EXISTS accounts (
        id                    INTEGER PRIMARY KEY AUTOINCREMENT,
        name                  TEXT    NOT NULL UNIQUE,
        account_type          TEXT    NOT NULL CHECK(account_type IN ('checking','savings','credit')),
        initial_balance_cents INTEGER NOT NULL,
        current_balance_cents INTEGER NOT NULL,
        status                TEXT    NOT NULL DEFAULT 'active' CHECK(status IN ('active','archived')),
        created_at            INTEGER NOT NULL,
        updated_at            INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS user_roles (
        user_id            TEXT PRIMARY KEY,
        role               TEXT NOT NULL CHECK(role IN ('admin','member')),
        default_account_id INTEGER REFERENCES accounts(id) ON DELETE SET NULL,
        created_at         INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS budget_templates (
        id         INTEGER PRIMARY KEY AUTOINCREMENT,
        name       TEXT    NOT NULL,
        is_active  INTEGER NOT NULL DEFAULT 0 CHECK(is_active IN (0, 1)),
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL
    );

    CREATE UNIQUE INDEX IF NOT EXISTS ux_budget_templates_single_active
        ON budget_templates(is_active) WHERE is_active = 1;

    CREATE TABLE IF NOT EXISTS envelope_groups (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        template_id INTEGER NOT NULL REFERENCES budget_templates(id) ON DELETE CASCADE,
        name        TEXT    NOT NULL,
        sort_order  INTEGER NOT NULL,
        created_at  INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS envelopes (
        id                  INTEGER PRIMARY KEY AUTOINCREMENT,
        group_id            INTEGER NOT NULL REFERENCES envelope_groups(id) ON DELETE CASCADE,
        name                TEXT    NOT NULL,
        budget_amount_cents INTEGER NOT NULL CHECK(budget_amount_cents >= 0),
        sort_order          INTEGER NOT NULL,
        status              TEXT    NOT NULL DEFAULT 'active' CHECK(status IN ('active','archived')),
        created_at          INTEGER NOT NULL,
        updated_at          INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS income_categories (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        template_id INTEGER NOT NULL REFERENCES budget_templates(id) ON DELETE CASCADE,
        name        TEXT    NOT NULL,
        created_at  INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS recurring_rules (
        id                 INTEGER PRIMARY KEY AUTOINCREMENT,
        type               TEXT    NOT NULL CHECK(type IN ('income','expense')),
        amount_cents       INTEGER NOT NULL CHECK(amount_cents > 0),
        account_id         INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
        envelope_id        INTEGER REFERENCES envelopes(id) ON DELETE SET NULL,
        income_category_id INTEGER REFERENCES income_categories(id) ON DELETE SET NULL,
        description        TEXT    NOT NULL DEFAULT '',
        frequency          TEXT    NOT NULL CHECK(frequency IN
                               ('daily','weekly','biweekly','monthly','quarterly','yearly')),
        day_of_month       INTEGER CHECK(day_of_month BETWEEN 1 AND 31),
        day_of_week        INTEGER CHECK(day_of_week BETWEEN 1 AND 7),
        start_date         INTEGER NOT NULL,
        end_date           INTEGER,
        auto_clear         INTEGER NOT NULL DEFAULT 0 CHECK(auto_clear IN (0, 1)),
        is_active          INTEGER NOT NULL DEFAULT 1 CHECK(is_active IN (0, 1)),
        created_by         TEXT    NOT NULL,
        created_at         INTEGER NOT NULL,
        updated_at         INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS transactions (
        id                 INTEGER PRIMARY KEY AUTOINCREMENT,
        account_id         INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
        type               TEXT    NOT NULL CHECK(type IN ('income','expense')),
        amount_cents       INTEGER NOT NULL CHECK(amount_cents > 0),
        date               INTEGER NOT NULL,
        description        TEXT    NOT NULL DEFAULT '',
        envelope_id        INTEGER REFERENCES envelopes(id) ON DELETE SET NULL,
        income_category_id INTEGER REFERENCES income_categories(id) ON DELETE SET NULL,
        status             TEXT    NOT NULL CHECK(status IN ('pending','cleared')),
        created_by         TEXT    NOT NULL,
        cleared_by         TEXT,
        cleared_at         INTEGER,
        transfer_pair_id   INTEGER,
        recurring_rule_id  INTEGER REFERENCES recurring_rules(id) ON DELETE SET NULL,
        created_at         INTEGER NOT NULL,
        updated_at         INTEGER NOT NULL,
        CHECK(envelope_id IS NULL OR income_category_id IS NULL)
    );

    CREATE INDEX IF NOT EXISTS idx_transactions_account_id    ON transactions(account_id);
    CREATE INDEX IF NOT EXISTS idx_transactions_date          ON transactions(date);
    CREATE INDEX IF NOT EXISTS idx_transactions_envelope_id   ON transactions(envelope_id);
    CREATE INDEX IF NOT EXISTS idx_transactions_transfer_pair ON transactions(transfer_pair_id);

    CREATE TABLE IF NOT EXISTS generation_checkpoint (
        id           INTEGER PRIMARY KEY CHECK(id = 1),
        through_date INTEGER NOT NULL,
        updated_at   INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS app_settings (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
"""
