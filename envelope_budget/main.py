from dataclasses import dataclass

import structlog

from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.database.account_dao import AccountDAO
from envelope_budget.database.transaction_dao import TransactionDAO
from envelope_budget.database.category_dao import CategoryDAO
from envelope_budget.database.budget_dao import BudgetDAO
from envelope_budget.database.recurring_dao import RecurringDAO
from envelope_budget.database.checkpoint_dao import CheckpointDAO
from envelope_budget.database.user_role_dao import UserRoleDAO

from envelope_budget.services.account_service import AccountService
from envelope_budget.services.budget_service import BudgetService
from envelope_budget.services.category_service import CategoryService
from envelope_budget.services.identity_service import IdentityService
from envelope_budget.services.reconciliation_service import ReconciliationService
from envelope_budget.services.recurring_service import RecurringService
from envelope_budget.services.transaction_service import TransactionService

from envelope_budget.utils.app_config import (
    get_busy_timeout,
    get_db_path,
    get_log_level,
    load_config,
)
from envelope_budget.utils.constants import SYSTEM_USER_ID
from envelope_budget.utils.date_helpers import format_date
from envelope_budget.utils.log_config import configure_logging

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    db: DatabaseManager
    identity: IdentityService
    accounts: AccountService
    budgets: BudgetService
    categories: CategoryService
    transactions: TransactionService
    recurring: RecurringService
    reconciliation: ReconciliationService


def build_services(db: DatabaseManager) -> Services:
    # ── DAOs ─────────────────────────────────────────────────────────────────
    account_dao = AccountDAO(db)
    tx_dao = TransactionDAO(db)
    category_dao = CategoryDAO(db)
    budget_dao = BudgetDAO(db)
    recurring_dao = RecurringDAO(db)
    checkpoint_dao = CheckpointDAO(db)
    role_dao = UserRoleDAO(db)

    # ── Services ─────────────────────────────────────────────────────────────
    tx_svc = TransactionService(db, tx_dao, account_dao, budget_dao, category_dao)
    return Services(
        db=db,
        identity=IdentityService(db, role_dao, account_dao),
        accounts=AccountService(db, account_dao),
        budgets=BudgetService(db, budget_dao),
        categories=CategoryService(db, category_dao, budget_dao),
        transactions=tx_svc,
        recurring=RecurringService(
            db, recurring_dao, checkpoint_dao, account_dao, budget_dao, tx_svc
        ),
        reconciliation=ReconciliationService(account_dao, tx_dao, budget_dao),
    )


def main():
    # ── Bootstrap: config before the DB ──────────────────────────────────────
    config = load_config()
    configure_logging(get_log_level(config))

    # ── Database ─────────────────────────────────────────────────────────────
    db = DatabaseManager(get_db_path(config), timeout=get_busy_timeout(config))
    try:
        db.initialize()
        services = build_services(db)

        # ── Apply due recurring rules ────────────────────────────────────────
        system = services.identity.resolve(SYSTEM_USER_ID)
        result = services.recurring.generate_due(system)
        logger.info("startup_generation_done", generated=len(result.transactions),
                    through=format_date(result.through_date))

        # ── Reconcile stored balances ────────────────────────────────────────
        discrepancies = services.reconciliation.reconcile_accounts()
        if discrepancies:
            logger.warning("startup_reconciliation_failed", accounts=len(discrepancies))
    finally:
        db.close()


if __name__ == "__main__":
    main()
