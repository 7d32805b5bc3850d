from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


def format_money(amount_cents: int, symbol: str = "$") -> str:
    """Format integer cents as a currency string, e.g. 123456 -> '$1,234.56'."""
    sign = "-" if amount_cents < 0 else ""
    dollars, cents = divmod(abs(amount_cents), 100)
    return f"{sign}{symbol}{dollars:,}.{cents:02d}"


def format_signed(amount_cents: int, symbol: str = "$") -> str:
    """Format with +/- sign."""
    sign = "+" if amount_cents >= 0 else "-"
    return f"{sign}{format_money(abs(amount_cents), symbol)}"


def parse_money(text: str) -> int:
    """Parse user input like '$54.13', '1,200' or '(12.50)' into integer cents.

    Rounds half-up to the nearest cent.
    """
    if text is None:
        raise ValueError("Invalid money amount")
    cleaned = "".join(str(text).split()).replace("$", "").replace(",", "")
    negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = cleaned[1:-1]
        negative = True
    if not cleaned:
        raise ValueError("Invalid money amount")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError("Invalid money amount") from None
    if not amount.is_finite():
        raise ValueError("Invalid money amount")
    try:
        cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        # Past the context precision, e.g. "1e30"
        raise ValueError("Invalid money amount") from None
    return -cents if negative else cents
