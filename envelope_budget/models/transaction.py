from dataclasses import dataclass
from datetime import date
from typing import Optional

from envelope_budget.utils.constants import STATUS_CLEARED


@dataclass
class Transaction:
    id: int
    account_id: int
    type: str               # 'income' | 'expense'
    amount_cents: int       # always positive; sign comes from type
    date: date
    status: str             # 'pending' | 'cleared'
    created_by: str
    description: str = ""
    envelope_id: Optional[int] = None
    income_category_id: Optional[int] = None
    cleared_by: Optional[str] = None
    cleared_at: Optional[int] = None
    transfer_pair_id: Optional[int] = None
    recurring_rule_id: Optional[int] = None
    created_at: int = 0
    updated_at: int = 0

    @property
    def is_cleared(self) -> bool:
        return self.status == STATUS_CLEARED

    @property
    def is_transfer(self) -> bool:
        return self.transfer_pair_id is not None

    @property
    def delta_cents(self) -> int:
        """Signed effect on the account balance."""
        return self.amount_cents if self.type == "income" else -self.amount_cents
