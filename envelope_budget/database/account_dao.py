from typing import Optional
from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.models.account import Account
from envelope_budget.utils.date_helpers import date_to_ts, now_ts


class AccountDAO:
    def __init__(self, db: DatabaseManager):
        self._db = db

    def _row_to_model(self, row) -> Account:
        return Account(
            id=row["id"],
            name=row["name"],
            account_type=row["account_type"],
            initial_balance_cents=row["initial_balance_cents"],
            current_balance_cents=row["current_balance_cents"],
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def get_all(self, include_archived: bool = False) -> list[Account]:
        conn = self._db.get_connection()
        sql = "SELECT * FROM accounts"
        if not include_archived:
            sql += " WHERE status = 'active'"
        rows = conn.execute(sql + " ORDER BY name").fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_by_id(self, account_id: int) -> Optional[Account]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM accounts WHERE id = ?", (account_id,)
        ).fetchone()
        return self._row_to_model(row) if row else None

    def get_by_name(self, name: str) -> Optional[Account]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM accounts WHERE name = ?", (name,)
        ).fetchone()
        return self._row_to_model(row) if row else None

    def create(
        self,
        name: str,
        account_type: str = "checking",
        initial_balance_cents: int = 0,
    ) -> Account:
        conn = self._db.get_connection()
        ts = now_ts()
        cursor = conn.execute(
            """INSERT INTO accounts
               (name, account_type, initial_balance_cents, current_balance_cents,
                created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (name, account_type, initial_balance_cents, initial_balance_cents, ts, ts),
        )
        return self.get_by_id(cursor.lastrowid)

    def update(
        self,
        account_id: int,
        name: str,
        account_type: str,
        initial_balance_cents: int,
    ) -> Account:
        """Shifts current_balance_cents by the change in initial balance."""
        conn = self._db.get_connection()
        conn.execute(
            """UPDATE accounts
               SET name = ?, account_type = ?,
                   current_balance_cents = current_balance_cents + (? - initial_balance_cents),
                   initial_balance_cents = ?, updated_at = ?
               WHERE id = ?""",
            (name, account_type, initial_balance_cents, initial_balance_cents,
             now_ts(), account_id),
        )
        return self.get_by_id(account_id)

    def set_status(self, account_id: int, status: str):
        conn = self._db.get_connection()
        conn.execute(
            "UPDATE accounts SET status = ?, updated_at = ? WHERE id = ?",
            (status, now_ts(), account_id),
        )

    def adjust_balance(self, account_id: int, delta_cents: int):
        conn = self._db.get_connection()
        conn.execute(
            """UPDATE accounts
               SET current_balance_cents = current_balance_cents + ?, updated_at = ?
               WHERE id = ?""",
            (delta_cents, now_ts(), account_id),
        )

    def delete(self, account_id: int):
        conn = self._db.get_connection()
        conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))

    def has_transactions(self, account_id: int) -> bool:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT COUNT(*) as cnt FROM transactions WHERE account_id = ?",
            (account_id,),
        ).fetchone()
        return row["cnt"] > 0

    def compute_balance(
        self, account_id: int, as_of=None, include_pending: bool = False
    ) -> int:
        """initial balance + signed deltas, recomputed from the transactions table."""
        conn = self._db.get_connection()
        sql = """
            SELECT a.initial_balance_cents + COALESCE(SUM(
                       CASE t.type WHEN 'income' THEN t.amount_cents ELSE -t.amount_cents END
                   ), 0) AS balance
            FROM accounts a
            LEFT JOIN transactions t
                   ON t.account_id = a.id
                  {status_clause}
                  {date_clause}
            WHERE a.id = ?
            GROUP BY a.id
        """
        params: list = []
        status_clause = "" if include_pending else "AND t.status = 'cleared'"
        date_clause = ""
        if as_of is not None:
            date_clause = "AND t.date <= ?"
            params.append(date_to_ts(as_of))
        params.append(account_id)
        row = conn.execute(
            sql.format(status_clause=status_clause, date_clause=date_clause), params
        ).fetchone()
        return row["balance"] if row else 0
