from datetime import date
from typing import Optional
from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.models.recurring_rule import RecurringRule
from envelope_budget.utils.date_helpers import date_to_ts, now_ts, ts_to_date


class RecurringDAO:
    def __init__(self, db: DatabaseManager):
        self._db = db

    def _row_to_model(self, row) -> RecurringRule:
        return RecurringRule(
            id=row["id"],
            type=row["type"],
            amount_cents=row["amount_cents"],
            account_id=row["account_id"],
            frequency=row["frequency"],
            start_date=ts_to_date(row["start_date"]),
            auto_clear=bool(row["auto_clear"]),
            is_active=bool(row["is_active"]),
            day_of_month=row["day_of_month"],
            day_of_week=row["day_of_week"],
            end_date=ts_to_date(row["end_date"]) if row["end_date"] is not None else None,
            envelope_id=row["envelope_id"],
            income_category_id=row["income_category_id"],
            description=row["description"],
            created_by=row["created_by"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def get_all(self) -> list[RecurringRule]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM recurring_rules ORDER BY start_date, id"
        ).fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_active(self) -> list[RecurringRule]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM recurring_rules WHERE is_active = 1 ORDER BY start_date, id"
        ).fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_by_id(self, rule_id: int) -> Optional[RecurringRule]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM recurring_rules WHERE id = ?", (rule_id,)
        ).fetchone()
        return self._row_to_model(row) if row else None

    def create(
        self,
        type_: str,
        amount_cents: int,
        account_id: int,
        frequency: str,
        start_date: date,
        created_by: str,
        day_of_month: int | None = None,
        day_of_week: int | None = None,
        end_date: date | None = None,
        auto_clear: bool = False,
        envelope_id: int | None = None,
        income_category_id: int | None = None,
        description: str = "",
    ) -> RecurringRule:
        conn = self._db.get_connection()
        ts = now_ts()
        cursor = conn.execute(
            """INSERT INTO recurring_rules
               (type, amount_cents, account_id, envelope_id, income_category_id,
                description, frequency, day_of_month, day_of_week, start_date,
                end_date, auto_clear, created_by, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                type_, amount_cents, account_id, envelope_id, income_category_id,
                description, frequency, day_of_month, day_of_week,
                date_to_ts(start_date),
                date_to_ts(end_date) if end_date else None,
                1 if auto_clear else 0, created_by, ts, ts,
            ),
        )
        return self.get_by_id(cursor.lastrowid)

    def update(
        self,
        rule_id: int,
        type_: str,
        amount_cents: int,
        account_id: int,
        frequency: str,
        start_date: date,
        day_of_month: int | None = None,
        day_of_week: int | None = None,
        end_date: date | None = None,
        auto_clear: bool = False,
        envelope_id: int | None = None,
        income_category_id: int | None = None,
        description: str = "",
        is_active: bool = True,
    ) -> RecurringRule:
        conn = self._db.get_connection()
        conn.execute(
            """UPDATE recurring_rules SET
               type=?, amount_cents=?, account_id=?, envelope_id=?,
               income_category_id=?, description=?, frequency=?, day_of_month=?,
               day_of_week=?, start_date=?, end_date=?, auto_clear=?, is_active=?,
               updated_at=?
               WHERE id=?""",
            (
                type_, amount_cents, account_id, envelope_id, income_category_id,
                description, frequency, day_of_month, day_of_week,
                date_to_ts(start_date),
                date_to_ts(end_date) if end_date else None,
                1 if auto_clear else 0, 1 if is_active else 0, now_ts(), rule_id,
            ),
        )
        return self.get_by_id(rule_id)

    def set_active(self, rule_id: int, is_active: bool):
        conn = self._db.get_connection()
        conn.execute(
            "UPDATE recurring_rules SET is_active = ?, updated_at = ? WHERE id = ?",
            (1 if is_active else 0, now_ts(), rule_id),
        )

    def delete(self, rule_id: int):
        conn = self._db.get_connection()
        conn.execute("DELETE FROM recurring_rules WHERE id = ?", (rule_id,))
