import structlog

from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.database.account_dao import AccountDAO
from envelope_budget.database.user_role_dao import UserRoleDAO
from envelope_budget.models.actor import Actor
from envelope_budget.services.access import require_admin
from envelope_budget.services.errors import IntegrityViolation, ValidationError
from envelope_budget.utils.constants import ROLES, SYSTEM_USER_ID

logger = structlog.get_logger(__name__)


class IdentityService:
    """Maps user ids from the auth provider to roles and default accounts."""

    def __init__(self, db: DatabaseManager, role_dao: UserRoleDAO, account_dao: AccountDAO):
        self._db = db
        self._dao = role_dao
        self._account_dao = account_dao

    def resolve(self, user_id: str) -> Actor | None:
        return self._dao.get(user_id) if user_id else None

    def get_all(self) -> list[Actor]:
        return self._dao.get_all()

    def assign_role(
        self,
        actor: Actor,
        user_id: str,
        role: str,
        default_account_id: int | None = None,
    ) -> Actor:
        require_admin(actor)
        user_id = (user_id or "").strip()
        if not user_id:
            raise ValidationError("user_id", "User id cannot be empty.")
        if role not in ROLES:
            raise ValidationError("role", f"Role must be one of: {', '.join(ROLES)}.")
        with self._db.transaction():
            if default_account_id is not None:
                account = self._account_dao.get_by_id(default_account_id)
                if account is None or account.is_archived:
                    raise IntegrityViolation("Default account not found or archived.")
            assigned = self._dao.upsert(user_id, role, default_account_id)
        logger.info("role_assigned", user_id=user_id, role=role, by=actor.user_id)
        return assigned

    def revoke(self, actor: Actor, user_id: str):
        """Remove a user's role; their past transactions keep created_by."""
        require_admin(actor)
        if user_id == SYSTEM_USER_ID:
            raise IntegrityViolation("The system identity cannot be revoked.")
        with self._db.transaction():
            if self._dao.get(user_id) is None:
                raise IntegrityViolation(f"User '{user_id}' has no role.")
            self._dao.delete(user_id)
        logger.info("role_revoked", user_id=user_id, by=actor.user_id)
