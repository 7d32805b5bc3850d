import sqlite3
from datetime import date

import pytest

from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.main import build_services
from envelope_budget.services.errors import (
    AuthorizationError,
    IntegrityViolation,
    ValidationError,
)


class TestTemplates:
    """At most one active template, switched atomically."""

    def test_no_active_template_is_none(self, services):
        assert services.budgets.get_active_template() is None
        assert services.budgets.get_active_budget() is None
        assert services.budgets.active_envelopes() == []

    def test_activating_b_deactivates_a(self, services, admin):
        a = services.budgets.create_template(admin, "A", is_active=True)
        b = services.budgets.create_template(admin, "B")
        services.budgets.activate_template(admin, b.id)

        templates = {t.name: t for t in services.budgets.get_templates()}
        assert templates["B"].is_active
        assert not templates["A"].is_active
        assert services.budgets.get_active_template().id == b.id
        assert sum(t.is_active for t in templates.values()) == 1
        assert services.budgets.get_template(a.id).is_active is False

    def test_failed_activation_keeps_prior_active(self, services, admin):
        """Test an unknown target leaves the current template active."""
        a = services.budgets.create_template(admin, "A", is_active=True)
        with pytest.raises(IntegrityViolation):
            services.budgets.activate_template(admin, 999)
        assert services.budgets.get_active_template().id == a.id

    def test_creating_active_template_switches(self, services, admin, template):
        newer = services.budgets.create_template(admin, "2026", is_active=True)
        assert services.budgets.get_active_template().id == newer.id
        assert not services.budgets.get_template(template.id).is_active

    def test_database_rejects_second_active_row(self, db, services, admin, template):
        other = services.budgets.create_template(admin, "Other")
        with pytest.raises(sqlite3.IntegrityError):
            db.get_connection().execute(
                "UPDATE budget_templates SET is_active = 1 WHERE id = ?", (other.id,)
            )

    def test_member_cannot_activate(self, services, member, template):
        with pytest.raises(AuthorizationError):
            services.budgets.activate_template(member, template.id)

    def test_empty_name_rejected(self, services, admin):
        with pytest.raises(ValidationError, match="cannot be empty"):
            services.budgets.create_template(admin, "   ")

    def test_rename(self, services, admin, template):
        assert services.budgets.rename_template(admin, template.id, "Home").name == "Home"

    def test_delete_cascades(self, services, admin, template, groceries, salary):
        services.budgets.delete_template(admin, template.id)
        assert services.budgets.get_envelope(groceries.id) is None
        assert services.categories.get_by_id(salary.id) is None
        assert services.budgets.get_active_template() is None


class TestGroupsAndEnvelopes:
    def test_sort_order_appends(self, services, admin, template):
        first = services.budgets.create_group(admin, template.id, "Bills")
        second = services.budgets.create_group(admin, template.id, "Fun")
        assert second.sort_order == first.sort_order + 1

        e1 = services.budgets.create_envelope(admin, first.id, "Rent", 150000)
        e2 = services.budgets.create_envelope(admin, first.id, "Power", 9000)
        assert (e1.sort_order, e2.sort_order) == (1, 2)

    def test_sort_order_is_scoped_per_group(self, services, admin, template):
        bills = services.budgets.create_group(admin, template.id, "Bills")
        fun = services.budgets.create_group(admin, template.id, "Fun")
        services.budgets.create_envelope(admin, bills.id, "Rent", 150000)
        services.budgets.create_envelope(admin, bills.id, "Power", 9000)
        movies = services.budgets.create_envelope(admin, fun.id, "Movies", 3000)
        assert movies.sort_order == 1

    def test_sort_order_after_a_delete(self, services, admin, template):
        a = services.budgets.create_group(admin, template.id, "A")
        b = services.budgets.create_group(admin, template.id, "B")
        services.budgets.delete_group(admin, a.id)
        c = services.budgets.create_group(admin, template.id, "C")
        assert c.sort_order == b.sort_order + 1

    def test_appends_from_two_connections_do_not_collide(self, db, services, admin, template):
        """Test a second manager on the same file sees the first one's writes."""
        other_db = DatabaseManager(db.db_path, timeout=5.0)
        try:
            other = build_services(other_db)
            g1 = services.budgets.create_group(admin, template.id, "One")
            g2 = other.budgets.create_group(admin, template.id, "Two")
            assert g2.sort_order == g1.sort_order + 1
        finally:
            other_db.close()

    def test_active_budget_tree(self, services, admin, template, groceries):
        budget = services.budgets.get_active_budget()
        assert budget.id == template.id
        assert [g.name for g in budget.groups] == ["Living"]
        assert [e.name for e in budget.groups[0].envelopes] == ["Groceries"]

    def test_archive_hides_from_active_views(self, services, admin, template, groceries):
        services.budgets.archive_envelope(admin, groceries.id)
        assert services.budgets.active_envelopes() == []
        assert services.budgets.get_active_budget().groups[0].envelopes == []
        archived = services.budgets.get_groups(template.id, include_archived=True)
        assert [e.id for e in archived[0].envelopes] == [groceries.id]

    def test_restore(self, services, admin, groceries):
        services.budgets.archive_envelope(admin, groceries.id)
        services.budgets.restore_envelope(admin, groceries.id)
        assert [e.id for e in services.budgets.active_envelopes()] == [groceries.id]

    def test_update_envelope_partial(self, services, admin, groceries):
        updated = services.budgets.update_envelope(admin, groceries.id, budget_amount_cents=90000)
        assert updated.name == "Groceries"
        assert updated.budget_amount_cents == 90000

    def test_zero_budget_allowed_negative_rejected(self, services, admin, template):
        group = services.budgets.create_group(admin, template.id, "Misc")
        assert services.budgets.create_envelope(admin, group.id, "Buffer", 0).budget_amount_cents == 0
        with pytest.raises(ValidationError):
            services.budgets.create_envelope(admin, group.id, "Debt", -100)

    def test_envelope_in_unknown_group(self, services, admin):
        with pytest.raises(IntegrityViolation):
            services.budgets.create_envelope(admin, 404, "Ghost", 100)

    def test_deleting_group_keeps_transactions(
        self, services, admin, checking, template, groceries
    ):
        tx = services.transactions.record_transaction(
            admin, "expense", 2500, date(2025, 3, 2), checking.id, envelope_id=groceries.id
        )
        services.budgets.delete_group(admin, groceries.group_id)
        kept = services.transactions.get_by_id(tx.id)
        assert kept is not None
        assert kept.envelope_id is None
