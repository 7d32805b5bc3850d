from typing import Optional
from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.models.category import IncomeCategory
from envelope_budget.utils.date_helpers import now_ts


class CategoryDAO:
    """Income categories, owned by a budget template."""

    def __init__(self, db: DatabaseManager):
        self._db = db

    def _row_to_model(self, row) -> IncomeCategory:
        return IncomeCategory(
            id=row["id"],
            template_id=row["template_id"],
            name=row["name"],
            created_at=row["created_at"],
        )

    def get_by_template(self, template_id: int) -> list[IncomeCategory]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM income_categories WHERE template_id = ? ORDER BY name, id",
            (template_id,),
        ).fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_by_id(self, category_id: int) -> Optional[IncomeCategory]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM income_categories WHERE id = ?", (category_id,)
        ).fetchone()
        return self._row_to_model(row) if row else None

    def get_by_name(self, template_id: int, name: str) -> Optional[IncomeCategory]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM income_categories WHERE template_id = ? AND name = ? COLLATE NOCASE",
            (template_id, name),
        ).fetchone()
        return self._row_to_model(row) if row else None

    def create(self, template_id: int, name: str) -> IncomeCategory:
        conn = self._db.get_connection()
        cursor = conn.execute(
            "INSERT INTO income_categories(template_id, name, created_at) VALUES (?, ?, ?)",
            (template_id, name, now_ts()),
        )
        return self.get_by_id(cursor.lastrowid)

    def rename(self, category_id: int, name: str) -> IncomeCategory:
        conn = self._db.get_connection()
        conn.execute(
            "UPDATE income_categories SET name = ? WHERE id = ?", (name, category_id)
        )
        return self.get_by_id(category_id)

    def delete(self, category_id: int):
        conn = self._db.get_connection()
        conn.execute("DELETE FROM income_categories WHERE id = ?", (category_id,))
