from typing import Optional
from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.models.budget import BudgetTemplate, Envelope, EnvelopeGroup
from envelope_budget.utils.date_helpers import now_ts


class BudgetDAO:
    """Budget templates, their envelope groups and envelopes."""

    def __init__(self, db: DatabaseManager):
        self._db = db

    # ── Templates ────────────────────────────────────────────────────────────

    def _row_to_template(self, row) -> BudgetTemplate:
        return BudgetTemplate(
            id=row["id"],
            name=row["name"],
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def get_templates(self) -> list[BudgetTemplate]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM budget_templates ORDER BY name, id"
        ).fetchall()
        return [self._row_to_template(r) for r in rows]

    def get_template(self, template_id: int) -> Optional[BudgetTemplate]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM budget_templates WHERE id = ?", (template_id,)
        ).fetchone()
        return self._row_to_template(row) if row else None

    def get_active_template(self) -> Optional[BudgetTemplate]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM budget_templates WHERE is_active = 1"
        ).fetchone()
        return self._row_to_template(row) if row else None

    def count_active_templates(self) -> int:
        conn = self._db.get_connection()
        return conn.execute(
            "SELECT COUNT(*) FROM budget_templates WHERE is_active = 1"
        ).fetchone()[0]

    def create_template(self, name: str) -> BudgetTemplate:
        conn = self._db.get_connection()
        ts = now_ts()
        cursor = conn.execute(
            "INSERT INTO budget_templates(name, is_active, created_at, updated_at) VALUES (?, 0, ?, ?)",
            (name, ts, ts),
        )
        return self.get_template(cursor.lastrowid)

    def rename_template(self, template_id: int, name: str) -> BudgetTemplate:
        conn = self._db.get_connection()
        conn.execute(
            "UPDATE budget_templates SET name = ?, updated_at = ? WHERE id = ?",
            (name, now_ts(), template_id),
        )
        return self.get_template(template_id)

    def deactivate_all(self):
        conn = self._db.get_connection()
        conn.execute(
            "UPDATE budget_templates SET is_active = 0, updated_at = ? WHERE is_active = 1",
            (now_ts(),),
        )

    def set_active(self, template_id: int):
        conn = self._db.get_connection()
        conn.execute(
            "UPDATE budget_templates SET is_active = 1, updated_at = ? WHERE id = ?",
            (now_ts(), template_id),
        )

    def delete_template(self, template_id: int):
        conn = self._db.get_connection()
        conn.execute("DELETE FROM budget_templates WHERE id = ?", (template_id,))

    # ── Groups ───────────────────────────────────────────────────────────────

    def _row_to_group(self, row) -> EnvelopeGroup:
        return EnvelopeGroup(
            id=row["id"],
            template_id=row["template_id"],
            name=row["name"],
            sort_order=row["sort_order"],
            created_at=row["created_at"],
        )

    def get_groups(self, template_id: int) -> list[EnvelopeGroup]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM envelope_groups WHERE template_id = ? ORDER BY sort_order, id",
            (template_id,),
        ).fetchall()
        return [self._row_to_group(r) for r in rows]

    def get_group(self, group_id: int) -> Optional[EnvelopeGroup]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM envelope_groups WHERE id = ?", (group_id,)
        ).fetchone()
        return self._row_to_group(row) if row else None

    def create_group(self, template_id: int, name: str) -> EnvelopeGroup:
        """Appends after the current last group (sort_order = max + 1)."""
        conn = self._db.get_connection()
        cursor = conn.execute(
            """INSERT INTO envelope_groups(template_id, name, sort_order, created_at)
               SELECT ?, ?, COALESCE(MAX(sort_order), 0) + 1, ?
               FROM envelope_groups WHERE template_id = ?""",
            (template_id, name, now_ts(), template_id),
        )
        return self.get_group(cursor.lastrowid)

    def rename_group(self, group_id: int, name: str) -> EnvelopeGroup:
        conn = self._db.get_connection()
        conn.execute(
            "UPDATE envelope_groups SET name = ? WHERE id = ?", (name, group_id)
        )
        return self.get_group(group_id)

    def delete_group(self, group_id: int):
        conn = self._db.get_connection()
        conn.execute("DELETE FROM envelope_groups WHERE id = ?", (group_id,))

    # ── Envelopes ────────────────────────────────────────────────────────────

    def _row_to_envelope(self, row) -> Envelope:
        return Envelope(
            id=row["id"],
            group_id=row["group_id"],
            name=row["name"],
            budget_amount_cents=row["budget_amount_cents"],
            sort_order=row["sort_order"],
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def get_envelope(self, envelope_id: int) -> Optional[Envelope]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM envelopes WHERE id = ?", (envelope_id,)
        ).fetchone()
        return self._row_to_envelope(row) if row else None

    def get_envelopes(self, group_id: int, include_archived: bool = False) -> list[Envelope]:
        conn = self._db.get_connection()
        sql = "SELECT * FROM envelopes WHERE group_id = ?"
        if not include_archived:
            sql += " AND status = 'active'"
        rows = conn.execute(sql + " ORDER BY sort_order, id", (group_id,)).fetchall()
        return [self._row_to_envelope(r) for r in rows]

    def get_active_envelopes_for_template(self, template_id: int) -> list[Envelope]:
        conn = self._db.get_connection()
        rows = conn.execute(
            """SELECT e.*
               FROM envelopes e
               JOIN envelope_groups g ON e.group_id = g.id
               WHERE g.template_id = ? AND e.status = 'active'
               ORDER BY g.sort_order, g.id, e.sort_order, e.id""",
            (template_id,),
        ).fetchall()
        return [self._row_to_envelope(r) for r in rows]

    def create_envelope(
        self, group_id: int, name: str, budget_amount_cents: int
    ) -> Envelope:
        """Appends after the current last envelope in the group (sort_order = max + 1)."""
        conn = self._db.get_connection()
        ts = now_ts()
        cursor = conn.execute(
            """INSERT INTO envelopes
               (group_id, name, budget_amount_cents, sort_order, created_at, updated_at)
               SELECT ?, ?, ?, COALESCE(MAX(sort_order), 0) + 1, ?, ?
               FROM envelopes WHERE group_id = ?""",
            (group_id, name, budget_amount_cents, ts, ts, group_id),
        )
        return self.get_envelope(cursor.lastrowid)

    def update_envelope(
        self, envelope_id: int, name: str, budget_amount_cents: int
    ) -> Envelope:
        conn = self._db.get_connection()
        conn.execute(
            """UPDATE envelopes SET name = ?, budget_amount_cents = ?, updated_at = ?
               WHERE id = ?""",
            (name, budget_amount_cents, now_ts(), envelope_id),
        )
        return self.get_envelope(envelope_id)

    def set_envelope_status(self, envelope_id: int, status: str):
        conn = self._db.get_connection()
        conn.execute(
            "UPDATE envelopes SET status = ?, updated_at = ? WHERE id = ?",
            (status, now_ts(), envelope_id),
        )
