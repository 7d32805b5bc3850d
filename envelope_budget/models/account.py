from dataclasses import dataclass

from envelope_budget.utils.constants import STATUS_ARCHIVED


@dataclass
class Account:
    id: int
    name: str
    account_type: str = "checking"
    initial_balance_cents: int = 0
    current_balance_cents: int = 0   # denormalized: initial + cleared deltas
    status: str = "active"           # 'active' | 'archived'
    created_at: int = 0
    updated_at: int = 0

    @property
    def is_archived(self) -> bool:
        return self.status == STATUS_ARCHIVED


@dataclass
class BalanceDiscrepancy:
    account_id: int
    account_name: str
    stored_balance_cents: int
    computed_balance_cents: int

    @property
    def difference_cents(self) -> int:
        return self.stored_balance_cents - self.computed_balance_cents
