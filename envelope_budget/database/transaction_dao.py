from datetime import date
from typing import Optional
from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.models.transaction import Transaction
from envelope_budget.utils.date_helpers import date_to_ts, now_ts, ts_to_date


class TransactionDAO:
    def __init__(self, db: DatabaseManager):
        self._db = db

    def _row_to_model(self, row) -> Transaction:
        return Transaction(
            id=row["id"],
            account_id=row["account_id"],
            type=row["type"],
            amount_cents=row["amount_cents"],
            date=ts_to_date(row["date"]),
            status=row["status"],
            created_by=row["created_by"],
            description=row["description"],
            envelope_id=row["envelope_id"],
            income_category_id=row["income_category_id"],
            cleared_by=row["cleared_by"],
            cleared_at=row["cleared_at"],
            transfer_pair_id=row["transfer_pair_id"],
            recurring_rule_id=row["recurring_rule_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def get_by_account(
        self,
        account_id: int,
        status: str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Transaction]:
        """Transactions for one account; `end` is exclusive."""
        conn = self._db.get_connection()
        sql = "SELECT * FROM transactions WHERE account_id = ?"
        params: list = [account_id]

        if status:
            sql += " AND status = ?"
            params.append(status)
        if start:
            sql += " AND date >= ?"
            params.append(date_to_ts(start))
        if end:
            sql += " AND date < ?"
            params.append(date_to_ts(end))

        sql += " ORDER BY date ASC, id ASC"
        rows = conn.execute(sql, params).fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_by_id(self, tx_id: int) -> Optional[Transaction]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM transactions WHERE id = ?", (tx_id,)
        ).fetchone()
        return self._row_to_model(row) if row else None

    def get_by_transfer_pair(self, pair_id: int) -> list[Transaction]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM transactions WHERE transfer_pair_id = ? ORDER BY id",
            (pair_id,),
        ).fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_by_recurring_rule(self, rule_id: int) -> list[Transaction]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM transactions WHERE recurring_rule_id = ? ORDER BY date, id",
            (rule_id,),
        ).fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_envelope_spent(self, envelope_id: int, start: date, end: date) -> int:
        """Sum of expense amounts tagged to the envelope with date in [start, end)."""
        conn = self._db.get_connection()
        row = conn.execute(
            """SELECT COALESCE(SUM(amount_cents), 0) AS total
               FROM transactions
               WHERE envelope_id = ?
                 AND type = 'expense'
                 AND date >= ? AND date < ?""",
            (envelope_id, date_to_ts(start), date_to_ts(end)),
        ).fetchone()
        return row["total"]

    def get_spending_by_envelope(self, start: date, end: date) -> dict[int, int]:
        """{envelope_id: spent} for every envelope with expenses in [start, end)."""
        conn = self._db.get_connection()
        rows = conn.execute(
            """SELECT envelope_id, SUM(amount_cents) AS total
               FROM transactions
               WHERE type = 'expense'
                 AND envelope_id IS NOT NULL
                 AND date >= ? AND date < ?
               GROUP BY envelope_id""",
            (date_to_ts(start), date_to_ts(end)),
        ).fetchall()
        return {r["envelope_id"]: r["total"] for r in rows}

    def create(
        self,
        account_id: int,
        type_: str,
        amount_cents: int,
        date: date,
        created_by: str,
        description: str = "",
        envelope_id: int | None = None,
        income_category_id: int | None = None,
        cleared_by: str | None = None,
        transfer_pair_id: int | None = None,
        recurring_rule_id: int | None = None,
    ) -> Transaction:
        """Inserts a pending row, or a cleared one when cleared_by is given."""
        conn = self._db.get_connection()
        ts = now_ts()
        status = "cleared" if cleared_by else "pending"
        cursor = conn.execute(
            """INSERT INTO transactions
               (account_id, type, amount_cents, date, description, envelope_id,
                income_category_id, status, created_by, cleared_by, cleared_at,
                transfer_pair_id, recurring_rule_id, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                account_id, type_, amount_cents, date_to_ts(date), description,
                envelope_id, income_category_id, status, created_by, cleared_by,
                ts if cleared_by else None, transfer_pair_id, recurring_rule_id,
                ts, ts,
            ),
        )
        return self.get_by_id(cursor.lastrowid)

    def update(
        self,
        tx_id: int,
        amount_cents: int,
        date: date,
        description: str = "",
        envelope_id: int | None = None,
        income_category_id: int | None = None,
    ) -> Transaction:
        conn = self._db.get_connection()
        conn.execute(
            """UPDATE transactions
               SET amount_cents=?, date=?, description=?, envelope_id=?,
                   income_category_id=?, updated_at=?
               WHERE id=? AND status='pending'""",
            (amount_cents, date_to_ts(date), description, envelope_id,
             income_category_id, now_ts(), tx_id),
        )
        return self.get_by_id(tx_id)

    def mark_cleared(self, tx_id: int, cleared_by: str) -> bool:
        """pending -> cleared. Returns False when the row was already cleared."""
        conn = self._db.get_connection()
        ts = now_ts()
        cursor = conn.execute(
            """UPDATE transactions
               SET status='cleared', cleared_by=?, cleared_at=?, updated_at=?
               WHERE id=? AND status='pending'""",
            (cleared_by, ts, ts, tx_id),
        )
        return cursor.rowcount == 1

    def delete(self, tx_id: int):
        conn = self._db.get_connection()
        conn.execute("DELETE FROM transactions WHERE id = ?", (tx_id,))

    def get_next_transfer_pair_id(self) -> int:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT COALESCE(MAX(transfer_pair_id), 0) + 1 AS next_id FROM transactions"
        ).fetchone()
        return row["next_id"]
