from datetime import date, timedelta

import pytest

from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.main import build_services
from envelope_budget.services.errors import (
    AuthorizationError,
    ConcurrencyError,
    IntegrityViolation,
    ValidationError,
)


@pytest.fixture
def make_rule(services, admin, checking):
    def _make(frequency="monthly", start_date=date(2025, 1, 1), type_="expense",
              amount_cents=1000, **kwargs):
        return services.recurring.create(
            admin, type_, amount_cents, checking.id, frequency, start_date, **kwargs
        )
    return _make


def dates_of(result):
    return [t.date for t in result.transactions]


class TestFrequencies:
    """Occurrence dates per frequency, anchor and bounds."""

    def test_day_31_in_february_is_the_28th(self, services, system, make_rule):
        make_rule("monthly", date(2025, 2, 1), day_of_month=31)
        result = services.recurring.generate_due(system, date(2025, 2, 28))
        assert dates_of(result) == [date(2025, 2, 28)]

    def test_day_31_across_months(self, services, system, make_rule):
        make_rule("monthly", date(2025, 1, 1), day_of_month=31)
        result = services.recurring.generate_due(system, date(2025, 4, 30))
        assert dates_of(result) == [
            date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30),
        ]

    def test_leap_year_february(self, services, system, make_rule):
        make_rule("monthly", date(2024, 2, 1), day_of_month=30)
        result = services.recurring.generate_due(system, date(2024, 2, 29))
        assert dates_of(result) == [date(2024, 2, 29)]

    def test_daily(self, services, system, make_rule):
        make_rule("daily", date(2025, 3, 1))
        result = services.recurring.generate_due(system, date(2025, 3, 7))
        assert len(result.transactions) == 7

    def test_weekly_from_start_date(self, services, system, make_rule):
        make_rule("weekly", date(2025, 3, 5))
        result = services.recurring.generate_due(system, date(2025, 3, 31))
        assert dates_of(result) == [
            date(2025, 3, 5), date(2025, 3, 12), date(2025, 3, 19), date(2025, 3, 26),
        ]

    def test_weekly_pinned_to_monday(self, services, system, make_rule):
        """Test 2025-03-05 is a Wednesday; the first Monday after it is the 10th."""
        make_rule("weekly", date(2025, 3, 5), day_of_week=1)
        result = services.recurring.generate_due(system, date(2025, 3, 31))
        assert dates_of(result) == [
            date(2025, 3, 10), date(2025, 3, 17), date(2025, 3, 24), date(2025, 3, 31),
        ]
        assert all(d.isoweekday() == 1 for d in dates_of(result))

    def test_biweekly(self, services, system, make_rule):
        make_rule("biweekly", date(2025, 3, 5))
        result = services.recurring.generate_due(system, date(2025, 3, 31))
        assert dates_of(result) == [date(2025, 3, 5), date(2025, 3, 19)]

    def test_quarterly_across_two_runs(self, services, system, make_rule):
        make_rule("quarterly", date(2025, 1, 15), day_of_month=15)
        first = services.recurring.generate_due(system, date(2025, 5, 1))
        second = services.recurring.generate_due(system, date(2025, 12, 31))
        assert dates_of(first) == [date(2025, 1, 15), date(2025, 4, 15)]
        assert dates_of(second) == [date(2025, 7, 15), date(2025, 10, 15)]

    def test_yearly_clamps_leap_day(self, services, system, make_rule):
        make_rule("yearly", date(2024, 2, 29), day_of_month=29)
        result = services.recurring.generate_due(system, date(2026, 3, 1))
        assert dates_of(result) == [date(2024, 2, 29), date(2025, 2, 28), date(2026, 2, 28)]

    def test_end_date_bounds_generation(self, services, system, make_rule):
        make_rule("monthly", date(2025, 1, 1), day_of_month=1, end_date=date(2025, 3, 1))
        result = services.recurring.generate_due(system, date(2025, 6, 30))
        assert dates_of(result) == [date(2025, 1, 1), date(2025, 2, 1), date(2025, 3, 1)]

    def test_future_start_produces_nothing_yet(self, services, system, make_rule):
        make_rule("monthly", date(2025, 7, 1), day_of_month=1)
        assert services.recurring.generate_due(system, date(2025, 6, 30)).transactions == []
        later = services.recurring.generate_due(system, date(2025, 7, 1))
        assert dates_of(later) == [date(2025, 7, 1)]

    def test_inactive_rule_produces_nothing(self, services, admin, system, make_rule):
        rule = make_rule("daily", date(2025, 3, 1))
        services.recurring.set_active(admin, rule.id, False)
        assert services.recurring.generate_due(system, date(2025, 3, 7)).transactions == []
        assert services.recurring.occurrences(
            services.recurring.get_by_id(rule.id), None, date(2025, 3, 7)
        ) == []


class TestGeneration:
    def test_second_run_is_a_no_op(self, services, system, checking, make_rule):
        make_rule("weekly", date(2025, 3, 5))
        first = services.recurring.generate_due(system, date(2025, 3, 31))
        second = services.recurring.generate_due(system, date(2025, 3, 31))
        assert len(first.transactions) == 4
        assert second.transactions == []
        assert len(services.transactions.get_for_account(checking.id)) == 4

    def test_checkpoint_advances_to_reference_date(self, services, system, make_rule):
        make_rule("monthly", date(2025, 1, 1), day_of_month=10)
        assert services.recurring.get_checkpoint() is None
        services.recurring.generate_due(system, date(2025, 2, 3))
        assert services.recurring.get_checkpoint() == date(2025, 2, 3)

    def test_older_reference_date_does_not_move_checkpoint_back(
        self, services, system, make_rule
    ):
        make_rule("daily", date(2025, 3, 1))
        services.recurring.generate_due(system, date(2025, 3, 10))
        result = services.recurring.generate_due(system, date(2025, 3, 5))
        assert result.transactions == []
        assert services.recurring.get_checkpoint() == date(2025, 3, 10)

    def test_second_connection_sees_checkpoint(self, db, services, system, checking, make_rule):
        """Test a second caller on the same database generates nothing."""
        make_rule("daily", date(2025, 3, 1))
        services.recurring.generate_due(system, date(2025, 3, 3))

        other_db = DatabaseManager(db.db_path, timeout=5.0)
        try:
            other = build_services(other_db)
            assert other.recurring.generate_due(system, date(2025, 3, 3)).transactions == []
        finally:
            other_db.close()
        assert len(services.transactions.get_for_account(checking.id)) == 3

    def test_lost_race_writes_nothing(self, services, system, checking, make_rule, monkeypatch):
        """Test a stale checkpoint read makes the swap fail and rolls back the batch."""
        make_rule("daily", date(2025, 3, 1))
        services.recurring.generate_due(system, date(2025, 3, 3))
        monkeypatch.setattr(services.recurring._checkpoint_dao, "get", lambda: None)

        with pytest.raises(ConcurrencyError):
            services.recurring.generate_due(system, date(2025, 3, 5))
        monkeypatch.undo()
        assert len(services.transactions.get_for_account(checking.id)) == 3
        assert services.recurring.get_checkpoint() == date(2025, 3, 3)

    def test_reference_date_after_today_is_clamped(self, services, system, checking, make_rule):
        """Test nothing dated after today is posted and the checkpoint stops at today."""
        make_rule("daily", date.today(), auto_clear=True)
        result = services.recurring.generate_due(system, date.today() + timedelta(days=30))
        assert dates_of(result) == [date.today()]
        assert result.through_date == date.today()
        assert services.recurring.get_checkpoint() == date.today()
        stored = services.accounts.get_by_id(checking.id).current_balance_cents
        assert stored == 499000
        assert services.reconciliation.account_balance(checking.id, date.today()) == stored

    def test_auto_clear_hits_the_balance(self, services, system, checking, make_rule):
        make_rule("monthly", date(2025, 1, 1), day_of_month=1, auto_clear=True,
                  amount_cents=150000, description="Rent")
        result = services.recurring.generate_due(system, date(2025, 2, 15))
        assert all(t.is_cleared for t in result.transactions)
        assert all(t.cleared_by == "system" for t in result.transactions)
        assert services.accounts.get_by_id(checking.id).current_balance_cents == 200000
        assert services.reconciliation.reconcile_accounts() == []

    def test_pending_by_default(self, services, system, checking, make_rule):
        rule = make_rule("monthly", date(2025, 1, 1), day_of_month=1)
        result = services.recurring.generate_due(system, date(2025, 1, 31))
        tx = result.transactions[0]
        assert not tx.is_cleared
        assert tx.recurring_rule_id == rule.id
        assert [t.id for t in services.transactions.get_for_rule(rule.id)] == [tx.id]
        assert tx.created_by == "system"
        assert services.accounts.get_by_id(checking.id).current_balance_cents == 500000
        assert services.reconciliation.projected_balance(checking.id) == 499000

    def test_carries_categorization(self, services, system, groceries, salary, make_rule):
        make_rule("monthly", date(2025, 1, 1), day_of_month=5, envelope_id=groceries.id)
        make_rule("monthly", date(2025, 1, 1), day_of_month=25, type_="income",
                  income_category_id=salary.id)
        result = services.recurring.generate_due(system, date(2025, 1, 31))
        by_type = {t.type: t for t in result.transactions}
        assert by_type["expense"].envelope_id == groceries.id
        assert by_type["income"].income_category_id == salary.id

    def test_archived_envelope_rule_is_skipped(
        self, services, admin, system, groceries, make_rule
    ):
        make_rule("daily", date(2025, 3, 1), envelope_id=groceries.id)
        services.budgets.archive_envelope(admin, groceries.id)
        result = services.recurring.generate_due(system, date(2025, 3, 3))
        assert result.transactions == []

    def test_archived_account_rule_is_skipped(
        self, services, admin, system, checking, savings
    ):
        services.recurring.create(admin, "income", 500, savings.id, "daily", date(2025, 3, 1))
        services.recurring.create(admin, "income", 500, checking.id, "daily", date(2025, 3, 1))
        services.accounts.archive(admin, savings.id)
        result = services.recurring.generate_due(system, date(2025, 3, 2))
        assert {t.account_id for t in result.transactions} == {checking.id}

    def test_member_cannot_generate(self, services, member):
        with pytest.raises(AuthorizationError):
            services.recurring.generate_due(member, date(2025, 3, 1))


class TestRuleManagement:
    def test_monthly_requires_day_of_month(self, services, admin, checking):
        with pytest.raises(ValidationError) as exc:
            services.recurring.create(admin, "expense", 100, checking.id, "monthly",
                                      date(2025, 1, 1))
        assert exc.value.field == "day_of_month"

    def test_monthly_rejects_day_of_week(self, make_rule):
        with pytest.raises(ValidationError):
            make_rule("monthly", day_of_month=1, day_of_week=2)

    def test_daily_rejects_anchors(self, make_rule):
        with pytest.raises(ValidationError):
            make_rule("daily", day_of_week=2)
        with pytest.raises(ValidationError):
            make_rule("daily", day_of_month=2)

    @pytest.mark.parametrize("day", [0, 8])
    def test_day_of_week_range(self, make_rule, day):
        with pytest.raises(ValidationError):
            make_rule("weekly", day_of_week=day)

    def test_day_of_month_range(self, make_rule):
        with pytest.raises(ValidationError):
            make_rule("monthly", day_of_month=32)

    def test_unknown_frequency(self, make_rule):
        with pytest.raises(ValidationError):
            make_rule("fortnightly")

    def test_end_before_start(self, make_rule):
        with pytest.raises(ValidationError):
            make_rule("monthly", date(2025, 5, 1), day_of_month=1, end_date=date(2025, 4, 1))

    def test_archived_account_rejected_at_creation(self, services, admin, savings):
        services.accounts.archive(admin, savings.id)
        with pytest.raises(IntegrityViolation):
            services.recurring.create(admin, "income", 100, savings.id, "daily", date(2025, 1, 1))

    def test_member_cannot_create(self, services, member, checking):
        with pytest.raises(AuthorizationError):
            services.recurring.create(member, "expense", 100, checking.id, "daily",
                                      date(2025, 1, 1))

    def test_update(self, services, admin, checking, make_rule):
        rule = make_rule("monthly", day_of_month=1)
        updated = services.recurring.update(
            admin, rule.id, "expense", 2000, checking.id, "weekly", rule.start_date,
            day_of_week=5, description="Gym",
        )
        assert (updated.frequency, updated.day_of_week, updated.day_of_month) == ("weekly", 5, None)
        assert updated.amount_cents == 2000
        assert updated.description == "Gym"

    def test_update_keeps_inactive_rule_inactive(self, services, admin, checking, make_rule):
        rule = make_rule("monthly", day_of_month=1)
        services.recurring.set_active(admin, rule.id, False)
        updated = services.recurring.update(
            admin, rule.id, "expense", 2000, checking.id, "monthly", rule.start_date,
            day_of_month=15,
        )
        assert updated.is_active is False
        assert updated.day_of_month == 15

    def test_update_can_reactivate(self, services, admin, checking, make_rule):
        rule = make_rule("monthly", day_of_month=1)
        services.recurring.set_active(admin, rule.id, False)
        updated = services.recurring.update(
            admin, rule.id, "expense", 1000, checking.id, "monthly", rule.start_date,
            day_of_month=1, is_active=True,
        )
        assert updated.is_active is True

    def test_delete_keeps_generated_transactions(
        self, services, admin, system, checking, make_rule
    ):
        rule = make_rule("daily", date(2025, 3, 1))
        services.recurring.generate_due(system, date(2025, 3, 2))
        services.recurring.delete(admin, rule.id)
        assert services.recurring.get_by_id(rule.id) is None
        remaining = services.transactions.get_for_account(checking.id)
        assert len(remaining) == 2
        assert all(t.recurring_rule_id is None for t in remaining)

    def test_next_due_date(self, services, make_rule):
        rule = make_rule("monthly", date(2025, 1, 1), day_of_month=31)
        assert services.recurring.next_due_date(rule, date(2025, 2, 1)) == date(2025, 2, 28)
        assert services.recurring.next_due_date(rule, date(2025, 2, 28)) == date(2025, 3, 31)

    def test_next_due_date_after_end(self, services, make_rule):
        rule = make_rule("daily", date(2025, 1, 1), end_date=date(2025, 1, 10))
        assert services.recurring.next_due_date(rule, date(2025, 1, 10)) is None
