from datetime import date

import structlog

from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.database.account_dao import AccountDAO
from envelope_budget.database.budget_dao import BudgetDAO
from envelope_budget.database.category_dao import CategoryDAO
from envelope_budget.database.transaction_dao import TransactionDAO
from envelope_budget.models.actor import Actor
from envelope_budget.models.transaction import Transaction
from envelope_budget.services.access import (
    require_admin,
    require_member,
    require_owner_or_admin,
)
from envelope_budget.services.errors import (
    AuthorizationError,
    IntegrityViolation,
    ValidationError,
)
from envelope_budget.services.validation import (
    check_categorization,
    check_cents,
    check_date,
)
from envelope_budget.utils.constants import (
    STATUS_CLEARED,
    STATUS_PENDING,
    TRANSACTION_STATUSES,
    TRANSACTION_TYPES,
)
from envelope_budget.utils.date_helpers import today

logger = structlog.get_logger(__name__)


class TransactionService:
    """The ledger: every write keeps accounts.current_balance_cents equal to
    initial balance + the signed amounts of the account's cleared transactions.
    """

    def __init__(
        self,
        db: DatabaseManager,
        tx_dao: TransactionDAO,
        account_dao: AccountDAO,
        budget_dao: BudgetDAO,
        category_dao: CategoryDAO,
    ):
        self._db = db
        self._dao = tx_dao
        self._account_dao = account_dao
        self._budget_dao = budget_dao
        self._category_dao = category_dao

    # ── Queries ──────────────────────────────────────────────────────────────

    def get_by_id(self, tx_id: int) -> Transaction | None:
        return self._dao.get_by_id(tx_id)

    def get_for_account(
        self,
        account_id: int,
        status: str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Transaction]:
        return self._dao.get_by_account(account_id, status, start, end)

    def get_transfer_pair(self, pair_id: int) -> list[Transaction]:
        return self._dao.get_by_transfer_pair(pair_id)

    def get_for_rule(self, rule_id: int) -> list[Transaction]:
        """Transactions generated from a recurring rule."""
        return self._dao.get_by_recurring_rule(rule_id)

    def get_with_running_balance(self, account_id: int) -> list[tuple[Transaction, int]]:
        """Transactions in date order, each paired with the cleared balance after it.

        Pending rows carry the balance unchanged.
        """
        account = self._account_dao.get_by_id(account_id)
        if account is None:
            return []
        balance = account.initial_balance_cents
        result = []
        for tx in self._dao.get_by_account(account_id):
            if tx.is_cleared:
                balance += tx.delta_cents
            result.append((tx, balance))
        return result

    # ── Mutations ────────────────────────────────────────────────────────────

    def record_transaction(
        self,
        actor: Actor,
        type_: str,
        amount_cents: int,
        date: date,
        account_id: int | None = None,
        envelope_id: int | None = None,
        income_category_id: int | None = None,
        description: str = "",
        status: str = STATUS_PENDING,
    ) -> Transaction:
        require_member(actor)
        if account_id is None:
            account_id = actor.default_account_id
            if account_id is None:
                raise ValidationError("account_id", "No account given and no default account set.")
        if not actor.is_admin and account_id != actor.default_account_id:
            raise AuthorizationError(
                "Members can only record transactions against their default account."
            )
        self._validate(type_, amount_cents, date, envelope_id, income_category_id)
        if status not in TRANSACTION_STATUSES:
            raise ValidationError("status", f"Status must be one of: {', '.join(TRANSACTION_STATUSES)}.")
        if status == STATUS_CLEARED:
            self._check_clear_date(date)

        with self._db.transaction():
            self.check_references(account_id, envelope_id, income_category_id)
            tx = self.post(
                created_by=actor.user_id,
                type_=type_,
                amount_cents=amount_cents,
                date=date,
                account_id=account_id,
                envelope_id=envelope_id,
                income_category_id=income_category_id,
                description=(description or "").strip(),
                cleared=status == STATUS_CLEARED,
            )
        logger.info("transaction_recorded", tx_id=tx.id, account_id=account_id,
                    type=type_, amount_cents=amount_cents, status=tx.status,
                    by=actor.user_id)
        return tx

    def post(
        self,
        created_by: str,
        type_: str,
        amount_cents: int,
        date: date,
        account_id: int,
        envelope_id: int | None = None,
        income_category_id: int | None = None,
        description: str = "",
        cleared: bool = False,
        transfer_pair_id: int | None = None,
        recurring_rule_id: int | None = None,
    ) -> Transaction:
        """Insert one already-validated transaction and apply its balance effect.

        Callers must hold ``db.transaction()``.
        """
        tx = self._dao.create(
            account_id=account_id,
            type_=type_,
            amount_cents=amount_cents,
            date=date,
            created_by=created_by,
            description=description,
            envelope_id=envelope_id,
            income_category_id=income_category_id,
            cleared_by=created_by if cleared else None,
            transfer_pair_id=transfer_pair_id,
            recurring_rule_id=recurring_rule_id,
        )
        if tx.is_cleared:
            self._account_dao.adjust_balance(account_id, tx.delta_cents)
        return tx

    def create_transfer(
        self,
        actor: Actor,
        from_account_id: int,
        to_account_id: int,
        amount_cents: int,
        date: date,
        description: str = "",
        cleared: bool = False,
    ) -> tuple[Transaction, Transaction]:
        """Atomically create both sides of a transfer: (debit, credit)."""
        require_admin(actor)
        if from_account_id == to_account_id:
            raise ValidationError("to_account_id", "Cannot transfer to the same account.")
        check_cents(amount_cents)
        check_date(date)
        if cleared:
            self._check_clear_date(date)

        with self._db.transaction():
            self._require_open_account(from_account_id)
            self._require_open_account(to_account_id)
            pair_id = self._dao.get_next_transfer_pair_id()
            description = (description or "").strip()
            debit = self.post(
                created_by=actor.user_id,
                type_="expense",
                amount_cents=amount_cents,
                date=date,
                account_id=from_account_id,
                description=description,
                cleared=cleared,
                transfer_pair_id=pair_id,
            )
            credit = self.post(
                created_by=actor.user_id,
                type_="income",
                amount_cents=amount_cents,
                date=date,
                account_id=to_account_id,
                description=description,
                cleared=cleared,
                transfer_pair_id=pair_id,
            )
        logger.info("transfer_created", pair_id=pair_id, from_account_id=from_account_id,
                    to_account_id=to_account_id, amount_cents=amount_cents,
                    by=actor.user_id)
        return debit, credit

    def clear_transaction(self, actor: Actor, tx_id: int) -> Transaction:
        """pending -> cleared. Clearing twice is a no-op that keeps the first stamp.
        A transaction dated after today stays pending until its date arrives.

        Clearing one half of a transfer clears both halves.
        """
        require_member(actor)
        with self._db.transaction():
            tx = self._require(tx_id)
            if not tx.is_cleared:
                self._check_clear_date(tx.date)
            for half in self._with_pair(tx):
                if self._dao.mark_cleared(half.id, actor.user_id):
                    self._account_dao.adjust_balance(half.account_id, half.delta_cents)
                    logger.info("transaction_cleared", tx_id=half.id, by=actor.user_id)
            return self._dao.get_by_id(tx_id)

    def update_transaction(
        self,
        actor: Actor,
        tx_id: int,
        amount_cents: int,
        date: date,
        description: str = "",
        envelope_id: int | None = None,
        income_category_id: int | None = None,
    ) -> Transaction:
        """Edit a pending, non-transfer transaction. Type and account are fixed."""
        require_member(actor)
        with self._db.transaction():
            tx = self._require(tx_id)
            require_owner_or_admin(actor, tx.created_by)
            if tx.is_cleared:
                raise IntegrityViolation("Cleared transactions cannot be edited.")
            if tx.is_transfer:
                raise IntegrityViolation(
                    "Transfers cannot be edited; delete the transfer and create it again."
                )
            self._validate(tx.type, amount_cents, date, envelope_id, income_category_id)
            self.check_references(tx.account_id, envelope_id, income_category_id)
            updated = self._dao.update(
                tx_id, amount_cents, date, (description or "").strip(),
                envelope_id, income_category_id,
            )
        logger.info("transaction_updated", tx_id=tx_id, by=actor.user_id)
        return updated

    def delete_transaction(self, actor: Actor, tx_id: int) -> list[int]:
        """Delete a transaction (both halves for a transfer). Returns the deleted ids.

        Pending rows: creator or admin. Cleared rows: admin only, and their
        balance effect is reversed.
        """
        require_member(actor)
        with self._db.transaction():
            tx = self._require(tx_id)
            halves = self._with_pair(tx)
            if any(h.is_cleared for h in halves):
                require_admin(actor)
            else:
                require_owner_or_admin(actor, tx.created_by)
            for half in halves:
                if half.is_cleared:
                    self._account_dao.adjust_balance(half.account_id, -half.delta_cents)
                self._dao.delete(half.id)
        deleted = [h.id for h in halves]
        logger.info("transaction_deleted", tx_ids=deleted, by=actor.user_id)
        return deleted

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _with_pair(self, tx: Transaction) -> list[Transaction]:
        if tx.is_transfer:
            return self._dao.get_by_transfer_pair(tx.transfer_pair_id)
        return [tx]

    def _require(self, tx_id: int) -> Transaction:
        tx = self._dao.get_by_id(tx_id)
        if tx is None:
            raise IntegrityViolation(f"Transaction {tx_id} not found.")
        return tx

    def _require_open_account(self, account_id: int):
        account = self._account_dao.get_by_id(account_id)
        if account is None:
            raise IntegrityViolation(f"Account {account_id} not found.")
        if account.is_archived:
            raise IntegrityViolation(f"Account '{account.name}' is archived.")
        return account

    def check_references(
        self, account_id: int, envelope_id: int | None, income_category_id: int | None
    ):
        self._require_open_account(account_id)
        if envelope_id is not None:
            envelope = self._budget_dao.get_envelope(envelope_id)
            if envelope is None:
                raise IntegrityViolation(f"Envelope {envelope_id} not found.")
            if envelope.is_archived:
                raise IntegrityViolation(f"Envelope '{envelope.name}' is archived.")
        if income_category_id is not None:
            if self._category_dao.get_by_id(income_category_id) is None:
                raise IntegrityViolation(f"Income category {income_category_id} not found.")

    @staticmethod
    def _check_clear_date(tx_date: date):
        # The stored balance only ever holds amounts dated today or earlier.
        if tx_date > today():
            raise ValidationError("status", "Transactions dated after today cannot be cleared.")

    @staticmethod
    def _validate(
        type_: str,
        amount_cents: int,
        date: date,
        envelope_id: int | None,
        income_category_id: int | None,
    ):
        if type_ not in TRANSACTION_TYPES:
            raise ValidationError("type", f"Invalid type: {type_}")
        check_cents(amount_cents)
        check_date(date)
        check_categorization(type_, envelope_id, income_category_id)
