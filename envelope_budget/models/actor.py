from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Actor:
    """The caller of a mutating operation, as supplied by the identity layer."""
    user_id: str
    role: str                           # 'admin' | 'member'
    default_account_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
