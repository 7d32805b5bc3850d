from typing import Optional
from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.models.actor import Actor
from envelope_budget.utils.date_helpers import now_ts


class UserRoleDAO:
    """Role and default account per user id issued by the identity provider."""

    def __init__(self, db: DatabaseManager):
        self._db = db

    def _row_to_model(self, row) -> Actor:
        return Actor(
            user_id=row["user_id"],
            role=row["role"],
            default_account_id=row["default_account_id"],
        )

    def get_all(self) -> list[Actor]:
        conn = self._db.get_connection()
        rows = conn.execute("SELECT * FROM user_roles ORDER BY user_id").fetchall()
        return [self._row_to_model(r) for r in rows]

    def get(self, user_id: str) -> Optional[Actor]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM user_roles WHERE user_id = ?", (user_id,)
        ).fetchone()
        return self._row_to_model(row) if row else None

    def upsert(self, user_id: str, role: str, default_account_id: int | None = None) -> Actor:
        conn = self._db.get_connection()
        conn.execute(
            """INSERT INTO user_roles(user_id, role, default_account_id, created_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(user_id)
               DO UPDATE SET role = excluded.role,
                             default_account_id = excluded.default_account_id""",
            (user_id, role, default_account_id, now_ts()),
        )
        return self.get(user_id)

    def delete(self, user_id: str):
        conn = self._db.get_connection()
        conn.execute("DELETE FROM user_roles WHERE user_id = ?", (user_id,))
