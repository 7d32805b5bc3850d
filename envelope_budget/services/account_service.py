import structlog

from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.database.account_dao import AccountDAO
from envelope_budget.models.account import Account
from envelope_budget.models.actor import Actor
from envelope_budget.services.access import require_admin
from envelope_budget.services.errors import IntegrityViolation, ValidationError
from envelope_budget.services.validation import check_cents, clean_name
from envelope_budget.utils.constants import ACCOUNT_TYPES, STATUS_ACTIVE, STATUS_ARCHIVED

logger = structlog.get_logger(__name__)


class AccountService:
    def __init__(self, db: DatabaseManager, account_dao: AccountDAO):
        self._db = db
        self._dao = account_dao

    def get_all(self, include_archived: bool = False) -> list[Account]:
        return self._dao.get_all(include_archived)

    def get_by_id(self, account_id: int) -> Account | None:
        return self._dao.get_by_id(account_id)

    def create(
        self,
        actor: Actor,
        name: str,
        account_type: str = "checking",
        initial_balance_cents: int = 0,
    ) -> Account:
        require_admin(actor)
        name = clean_name(name, label="Account name")
        self._validate_type(account_type)
        check_cents(initial_balance_cents, "initial_balance_cents", allow_negative=True)
        with self._db.transaction():
            if self._dao.get_by_name(name):
                raise ValidationError("name", f"An account named '{name}' already exists.")
            account = self._dao.create(name, account_type, initial_balance_cents)
        logger.info("account_created", account_id=account.id, by=actor.user_id)
        return account

    def update(
        self,
        actor: Actor,
        account_id: int,
        name: str,
        account_type: str,
        initial_balance_cents: int,
    ) -> Account:
        require_admin(actor)
        name = clean_name(name, label="Account name")
        self._validate_type(account_type)
        check_cents(initial_balance_cents, "initial_balance_cents", allow_negative=True)
        with self._db.transaction():
            current = self._require(account_id)
            existing = self._dao.get_by_name(name)
            if existing and existing.id != account_id:
                raise ValidationError("name", f"An account named '{name}' already exists.")
            # Guard: cannot change account type if transactions exist
            if current.account_type != account_type and self._dao.has_transactions(account_id):
                raise IntegrityViolation(
                    "Cannot change account type when the account has existing transactions."
                )
            account = self._dao.update(account_id, name, account_type, initial_balance_cents)
        logger.info("account_updated", account_id=account_id, by=actor.user_id)
        return account

    def archive(self, actor: Actor, account_id: int) -> Account:
        return self._set_status(actor, account_id, STATUS_ARCHIVED)

    def restore(self, actor: Actor, account_id: int) -> Account:
        return self._set_status(actor, account_id, STATUS_ACTIVE)

    def delete(self, actor: Actor, account_id: int):
        require_admin(actor)
        with self._db.transaction():
            self._require(account_id)
            if self._dao.has_transactions(account_id):
                raise IntegrityViolation(
                    "Cannot delete an account with existing transactions. "
                    "Archive it instead."
                )
            self._dao.delete(account_id)
        logger.info("account_deleted", account_id=account_id, by=actor.user_id)

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _set_status(self, actor: Actor, account_id: int, status: str) -> Account:
        require_admin(actor)
        with self._db.transaction():
            self._require(account_id)
            self._dao.set_status(account_id, status)
            account = self._dao.get_by_id(account_id)
        logger.info("account_status_changed", account_id=account_id, status=status,
                    by=actor.user_id)
        return account

    def _require(self, account_id: int) -> Account:
        account = self._dao.get_by_id(account_id)
        if account is None:
            raise IntegrityViolation(f"Account {account_id} not found.")
        return account

    @staticmethod
    def _validate_type(account_type: str):
        if account_type not in ACCOUNT_TYPES:
            raise ValidationError(
                "account_type",
                f"Invalid account type '{account_type}'. "
                f"Must be one of: {', '.join(ACCOUNT_TYPES)}.",
            )
