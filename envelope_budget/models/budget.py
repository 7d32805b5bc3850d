from dataclasses import dataclass, field

from envelope_budget.utils.constants import STATUS_ARCHIVED


@dataclass
class BudgetTemplate:
    id: int
    name: str
    is_active: bool = False
    created_at: int = 0
    updated_at: int = 0
    groups: list["EnvelopeGroup"] = field(default_factory=list)


@dataclass
class EnvelopeGroup:
    id: int
    template_id: int
    name: str
    sort_order: int
    created_at: int = 0
    envelopes: list["Envelope"] = field(default_factory=list)


@dataclass
class Envelope:
    id: int
    group_id: int
    name: str
    budget_amount_cents: int
    sort_order: int
    status: str = "active"   # 'active' | 'archived'
    created_at: int = 0
    updated_at: int = 0

    @property
    def is_archived(self) -> bool:
        return self.status == STATUS_ARCHIVED


@dataclass
class EnvelopeBudget:
    """An envelope's allocation against what was spent in one period."""
    envelope_id: int
    envelope_name: str
    group_name: str
    budget_amount_cents: int
    spent_cents: int = 0

    @property
    def remaining_cents(self) -> int:
        # Overspend stays negative.
        return self.budget_amount_cents - self.spent_cents

    @property
    def percentage(self) -> int:
        """Share of the allocation spent, in basis points (4250 = 42.50%)."""
        if self.budget_amount_cents <= 0:
            return 0
        return self.spent_cents * 10000 // self.budget_amount_cents
