from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from envelope_budget.models.transaction import Transaction


@dataclass
class RecurringRule:
    id: int
    type: str               # 'income' | 'expense'
    amount_cents: int
    account_id: int
    frequency: str          # daily | weekly | biweekly | monthly | quarterly | yearly
    start_date: date
    auto_clear: bool = False
    is_active: bool = True
    day_of_month: Optional[int] = None   # 1-31, clamped to month length
    day_of_week: Optional[int] = None    # 1=Mon..7=Sun
    end_date: Optional[date] = None
    envelope_id: Optional[int] = None
    income_category_id: Optional[int] = None
    description: str = ""
    created_by: str = ""
    created_at: int = 0
    updated_at: int = 0


@dataclass
class GenerationResult:
    through_date: date
    transactions: list[Transaction] = field(default_factory=list)
