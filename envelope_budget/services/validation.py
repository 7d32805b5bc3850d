from datetime import date

from envelope_budget.services.errors import ValidationError
from envelope_budget.utils.constants import NAME_MAX_LENGTH


def clean_name(name: str | None, field: str = "name", label: str = "Name") -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError(field, f"{label} cannot be empty.")
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError(field, f"{label} must be at most {NAME_MAX_LENGTH} characters.")
    return name


def check_cents(value, field: str = "amount_cents", allow_zero: bool = False,
                allow_negative: bool = False) -> int:
    # bool is an int subclass; True is not an amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, "Amount must be a whole number of cents.")
    if allow_negative:
        return value
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(
            field,
            "Amount must be 0 or greater." if allow_zero else "Amount must be positive.",
        )
    return value


def check_date(value, field: str = "date") -> date:
    if not isinstance(value, date):
        raise ValidationError(field, "Invalid date.")
    return value


def check_categorization(type_: str, envelope_id: int | None, income_category_id: int | None):
    """Envelopes tag expenses, income categories tag income; never both."""
    if envelope_id is not None and income_category_id is not None:
        raise ValidationError(
            "envelope_id",
            "A transaction can have an envelope or an income category, not both.",
        )
    if envelope_id is not None and type_ != "expense":
        raise ValidationError("envelope_id", "Only expenses can be assigned to an envelope.")
    if income_category_id is not None and type_ != "income":
        raise ValidationError(
            "income_category_id", "Only income can be assigned to an income category."
        )
