from datetime import date, timedelta

import pytest

from envelope_budget.utils.date_helpers import date_to_ts

MARCH = (date(2025, 3, 1), date(2025, 4, 1))


@pytest.fixture
def grocery_spending(services, admin, checking, groceries):
    for amount, day in [(10000, 3), (15000, 12), (9000, 27)]:
        services.transactions.record_transaction(
            admin, "expense", amount, date(2025, 3, day), checking.id,
            envelope_id=groceries.id, status="cleared",
        )


class TestEnvelopeSpending:
    def test_groceries_scenario(self, services, groceries, grocery_spending):
        assert services.reconciliation.envelope_spent(groceries.id, *MARCH) == 34000
        assert services.reconciliation.envelope_remaining(groceries.id, *MARCH) == 46000

    def test_period_end_is_exclusive(self, services, admin, checking, groceries):
        services.transactions.record_transaction(
            admin, "expense", 500, date(2025, 4, 1), checking.id, envelope_id=groceries.id
        )
        assert services.reconciliation.envelope_spent(groceries.id, *MARCH) == 0

    def test_overspend_goes_negative(self, services, admin, checking, groceries):
        services.transactions.record_transaction(
            admin, "expense", 95000, date(2025, 3, 5), checking.id, envelope_id=groceries.id
        )
        assert services.reconciliation.envelope_remaining(groceries.id, *MARCH) == -15000

    def test_archived_envelope_still_computes(
        self, services, admin, groceries, grocery_spending
    ):
        services.budgets.archive_envelope(admin, groceries.id)
        assert groceries.id not in [e.id for e in services.budgets.active_envelopes()]
        assert services.reconciliation.envelope_spent(groceries.id, *MARCH) == 34000

    def test_pending_expenses_count(self, services, admin, checking, groceries):
        services.transactions.record_transaction(
            admin, "expense", 700, date(2025, 3, 5), checking.id, envelope_id=groceries.id
        )
        assert services.reconciliation.envelope_spent(groceries.id, *MARCH) == 700

    def test_unknown_envelope(self, services):
        assert services.reconciliation.envelope_remaining(999, *MARCH) is None

    def test_budget_status(self, services, groceries, grocery_spending):
        status = services.reconciliation.budget_status("2025-03")
        assert len(status) == 1
        row = status[0]
        assert (row.envelope_name, row.group_name) == ("Groceries", "Living")
        assert row.spent_cents == 34000
        assert row.remaining_cents == 46000
        assert row.percentage == 4250

    def test_budget_status_without_active_template(self, services):
        assert services.reconciliation.budget_status("2025-03") == []


class TestAccountBalances:
    def test_as_of_excludes_later_transactions(self, services, admin, checking):
        services.transactions.record_transaction(
            admin, "expense", 1000, date(2025, 3, 1), checking.id, status="cleared"
        )
        services.transactions.record_transaction(
            admin, "expense", 2000, date(2025, 3, 10), checking.id, status="cleared"
        )
        assert services.reconciliation.account_balance(checking.id, date(2025, 3, 1)) == 499000
        assert services.reconciliation.account_balance(checking.id) == 497000

    def test_consistent_ledger_has_no_discrepancy(self, services, admin, checking, savings):
        services.transactions.create_transfer(
            admin, checking.id, savings.id, 5000, date(2025, 3, 1), cleared=True
        )
        assert services.reconciliation.check_account(checking.id) is None
        assert services.reconciliation.reconcile_accounts() == []

    def test_tampered_balance_is_reported_not_fixed(self, db, services, checking):
        db.get_connection().execute(
            "UPDATE accounts SET current_balance_cents = 1 WHERE id = ?", (checking.id,)
        )
        found = services.reconciliation.reconcile_accounts()
        assert len(found) == 1
        assert found[0].account_name == "Checking"
        assert found[0].computed_balance_cents == 500000
        assert found[0].difference_cents == 1 - 500000
        assert services.accounts.get_by_id(checking.id).current_balance_cents == 1

    def test_archived_accounts_are_checked(self, db, services, admin, savings):
        services.accounts.archive(admin, savings.id)
        db.get_connection().execute(
            "UPDATE accounts SET current_balance_cents = 0 WHERE id = ?", (savings.id,)
        )
        assert [d.account_id for d in services.reconciliation.reconcile_accounts()] == [savings.id]

    def test_future_cleared_amount_in_stored_balance_is_reported(self, db, services, checking):
        """Test the check compares against history up to today, not all history."""
        conn = db.get_connection()
        conn.execute(
            """INSERT INTO transactions(account_id, type, amount_cents, date, status,
                                        created_by, cleared_by, created_at, updated_at)
               VALUES (?, 'expense', 12000, ?, 'cleared', 'alice', 'alice', 0, 0)""",
            (checking.id, date_to_ts(date.today() + timedelta(days=10))),
        )
        conn.execute(
            "UPDATE accounts SET current_balance_cents = 488000 WHERE id = ?", (checking.id,)
        )
        found = services.reconciliation.check_account(checking.id)
        assert found is not None
        assert found.stored_balance_cents == 488000
        assert found.computed_balance_cents == 500000
