from datetime import date
from typing import Optional
from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.utils.date_helpers import date_to_ts, now_ts, ts_to_date


class CheckpointDAO:
    """Single-row watermark: the last date recurring rules were expanded through."""

    def __init__(self, db: DatabaseManager):
        self._db = db

    def get(self) -> Optional[date]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT through_date FROM generation_checkpoint WHERE id = 1"
        ).fetchone()
        return ts_to_date(row["through_date"]) if row else None

    def compare_and_set(self, expected: Optional[date], new: date) -> bool:
        """Move the watermark to `new` only if it still equals `expected`.

        Returns False when another writer got there first.
        """
        conn = self._db.get_connection()
        ts = now_ts()
        if expected is None:
            cursor = conn.execute(
                """INSERT OR IGNORE INTO generation_checkpoint(id, through_date, updated_at)
                   VALUES (1, ?, ?)""",
                (date_to_ts(new), ts),
            )
        else:
            cursor = conn.execute(
                """UPDATE generation_checkpoint SET through_date = ?, updated_at = ?
                   WHERE id = 1 AND through_date = ?""",
                (date_to_ts(new), ts, date_to_ts(expected)),
            )
        return cursor.rowcount == 1
