import structlog

from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.database.budget_dao import BudgetDAO
from envelope_budget.database.category_dao import CategoryDAO
from envelope_budget.models.actor import Actor
from envelope_budget.models.category import IncomeCategory
from envelope_budget.services.access import require_admin
from envelope_budget.services.errors import IntegrityViolation, ValidationError
from envelope_budget.services.validation import clean_name

logger = structlog.get_logger(__name__)


class CategoryService:
    def __init__(self, db: DatabaseManager, category_dao: CategoryDAO, budget_dao: BudgetDAO):
        self._db = db
        self._dao = category_dao
        self._budget_dao = budget_dao

    def get_by_id(self, category_id: int) -> IncomeCategory | None:
        return self._dao.get_by_id(category_id)

    def get_for_template(self, template_id: int) -> list[IncomeCategory]:
        return self._dao.get_by_template(template_id)

    def get_for_active_template(self) -> list[IncomeCategory]:
        template = self._budget_dao.get_active_template()
        return self._dao.get_by_template(template.id) if template else []

    def create(self, actor: Actor, template_id: int, name: str) -> IncomeCategory:
        require_admin(actor)
        name = clean_name(name, label="Category name")
        with self._db.transaction():
            if self._budget_dao.get_template(template_id) is None:
                raise IntegrityViolation(f"Budget template {template_id} not found.")
            if self._dao.get_by_name(template_id, name):
                raise ValidationError("name", f"A category named '{name}' already exists.")
            category = self._dao.create(template_id, name)
        logger.info("income_category_created", category_id=category.id,
                    template_id=template_id, by=actor.user_id)
        return category

    def rename(self, actor: Actor, category_id: int, name: str) -> IncomeCategory:
        require_admin(actor)
        name = clean_name(name, label="Category name")
        with self._db.transaction():
            category = self._dao.get_by_id(category_id)
            if category is None:
                raise IntegrityViolation(f"Income category {category_id} not found.")
            existing = self._dao.get_by_name(category.template_id, name)
            if existing and existing.id != category_id:
                raise ValidationError("name", f"A category named '{name}' already exists.")
            return self._dao.rename(category_id, name)

    def delete(self, actor: Actor, category_id: int):
        """Transactions keep their row; their income_category_id becomes NULL."""
        require_admin(actor)
        with self._db.transaction():
            if self._dao.get_by_id(category_id) is None:
                raise IntegrityViolation(f"Income category {category_id} not found.")
            self._dao.delete(category_id)
        logger.info("income_category_deleted", category_id=category_id, by=actor.user_id)
