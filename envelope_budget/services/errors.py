"""Business failures raised by the service layer.

All of them are ValueErrors, so existing ``except ValueError`` handlers keep
working; the subclass says which kind of failure it was and ``reason`` is the
message shown to the user.
"""


class LedgerError(ValueError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationError(LedgerError):
    """Malformed input, rejected before any mutation."""

    def __init__(self, field: str, reason: str):
        super().__init__(reason)
        self.field = field


class AuthorizationError(LedgerError):
    """The caller's role does not allow the operation."""


class IntegrityViolation(LedgerError):
    """A referenced entity is missing or archived, or the state transition is illegal."""


class ConcurrencyError(LedgerError):
    """Another writer changed shared state first; nothing was written."""
