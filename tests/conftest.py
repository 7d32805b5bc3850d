"""Shared fixtures: a fresh ledger database per test with the services wired."""

import pytest

from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.main import build_services
from envelope_budget.models.actor import Actor
from envelope_budget.utils.constants import SYSTEM_USER_ID


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(str(tmp_path / "ledger.db"), timeout=5.0)
    manager.initialize()
    yield manager
    manager.close()


@pytest.fixture
def services(db):
    return build_services(db)


@pytest.fixture
def system(services):
    return services.identity.resolve(SYSTEM_USER_ID)


@pytest.fixture
def admin(services, system):
    return services.identity.assign_role(system, "alice", "admin")


@pytest.fixture
def checking(services, admin):
    return services.accounts.create(admin, "Checking", "checking", 500000)


@pytest.fixture
def savings(services, admin):
    return services.accounts.create(admin, "Savings", "savings", 100000)


@pytest.fixture
def member(services, admin, checking):
    return services.identity.assign_role(admin, "bob", "member", checking.id)


@pytest.fixture
def outsider():
    """A caller with no role on record."""
    return Actor(user_id="mallory", role="guest")


@pytest.fixture
def template(services, admin):
    return services.budgets.create_template(admin, "Household", is_active=True)


@pytest.fixture
def groceries(services, admin, template):
    group = services.budgets.create_group(admin, template.id, "Living")
    return services.budgets.create_envelope(admin, group.id, "Groceries", 80000)


@pytest.fixture
def salary(services, admin, template):
    return services.categories.create(admin, template.id, "Salary")
