from dataclasses import dataclass


@dataclass
class IncomeCategory:
    id: int
    template_id: int
    name: str
    created_at: int = 0
