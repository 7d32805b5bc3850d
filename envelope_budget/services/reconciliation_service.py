from datetime import date

import structlog

from envelope_budget.database.account_dao import AccountDAO
from envelope_budget.database.budget_dao import BudgetDAO
from envelope_budget.database.transaction_dao import TransactionDAO
from envelope_budget.models.account import BalanceDiscrepancy
from envelope_budget.models.budget import EnvelopeBudget
from envelope_budget.utils.date_helpers import current_month_str, month_period, today

logger = structlog.get_logger(__name__)


class ReconciliationService:
    """Balances recomputed from the transactions table, and envelope spending.

    Nothing here writes: a stored balance that disagrees with the recomputed one
    is reported, never corrected.
    """

    def __init__(self, account_dao: AccountDAO, tx_dao: TransactionDAO, budget_dao: BudgetDAO):
        self._account_dao = account_dao
        self._tx_dao = tx_dao
        self._budget_dao = budget_dao

    # ── Accounts ─────────────────────────────────────────────────────────────

    def account_balance(self, account_id: int, as_of: date | None = None) -> int | None:
        """initial balance + cleared deltas dated on or before `as_of` (default: all)."""
        if self._account_dao.get_by_id(account_id) is None:
            return None
        return self._account_dao.compute_balance(account_id, as_of)

    def projected_balance(self, account_id: int, as_of: date | None = None) -> int | None:
        """Like account_balance, but pending transactions count too."""
        if self._account_dao.get_by_id(account_id) is None:
            return None
        return self._account_dao.compute_balance(account_id, as_of, include_pending=True)

    def check_account(self, account_id: int) -> BalanceDiscrepancy | None:
        """Compare the stored balance with the cleared history up to today."""
        account = self._account_dao.get_by_id(account_id)
        if account is None:
            return None
        computed = self._account_dao.compute_balance(account_id, today())
        if computed == account.current_balance_cents:
            return None
        discrepancy = BalanceDiscrepancy(
            account_id=account.id,
            account_name=account.name,
            stored_balance_cents=account.current_balance_cents,
            computed_balance_cents=computed,
        )
        logger.error("balance_discrepancy", account_id=account.id,
                     stored=discrepancy.stored_balance_cents, computed=computed)
        return discrepancy

    def reconcile_accounts(self) -> list[BalanceDiscrepancy]:
        result = []
        for account in self._account_dao.get_all(include_archived=True):
            discrepancy = self.check_account(account.id)
            if discrepancy:
                result.append(discrepancy)
        return result

    # ── Envelopes ────────────────────────────────────────────────────────────

    def envelope_spent(self, envelope_id: int, period_start: date, period_end: date) -> int:
        """Expenses tagged to the envelope dated in [period_start, period_end).

        Archived envelopes still answer from their historical transactions.
        """
        return self._tx_dao.get_envelope_spent(envelope_id, period_start, period_end)

    def envelope_remaining(
        self, envelope_id: int, period_start: date, period_end: date
    ) -> int | None:
        """budget - spent; negative when overspent. None for an unknown envelope."""
        envelope = self._budget_dao.get_envelope(envelope_id)
        if envelope is None:
            return None
        spent = self.envelope_spent(envelope_id, period_start, period_end)
        return envelope.budget_amount_cents - spent

    def budget_status(self, month: str | None = None) -> list[EnvelopeBudget]:
        """Every active envelope of the active template with its spending for the month."""
        template = self._budget_dao.get_active_template()
        if template is None:
            return []
        start, end = month_period(month or current_month_str())
        spending = self._tx_dao.get_spending_by_envelope(start, end)
        result = []
        for group in self._budget_dao.get_groups(template.id):
            for envelope in self._budget_dao.get_envelopes(group.id):
                result.append(EnvelopeBudget(
                    envelope_id=envelope.id,
                    envelope_name=envelope.name,
                    group_name=group.name,
                    budget_amount_cents=envelope.budget_amount_cents,
                    spent_cents=spending.get(envelope.id, 0),
                ))
        return result
