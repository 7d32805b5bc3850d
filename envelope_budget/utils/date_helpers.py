import calendar
import time
from datetime import date, datetime, timedelta
from envelope_budget.utils.constants import DATE_FORMAT, MONTH_FORMAT


def today() -> date:
    return date.today()


def current_month_str() -> str:
    return date.today().strftime(MONTH_FORMAT)


def now_ts() -> int:
    """Current instant as integer epoch seconds."""
    return int(time.time())


def date_to_ts(d: date) -> int:
    """Calendar date -> epoch seconds of its UTC midnight."""
    return calendar.timegm((d.year, d.month, d.day, 0, 0, 0))


def ts_to_date(ts: int) -> date:
    return date(1970, 1, 1) + timedelta(days=ts // 86400)


def parse_date(date_str: str) -> date | None:
    """Parse a date string in YYYY-MM-DD format, returning None on failure."""
    if not date_str:
        return None
    for fmt in (DATE_FORMAT, "%Y/%m/%d", "%Y.%m.%d"):
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue
    return None


def format_date(d: date) -> str:
    return d.strftime(DATE_FORMAT)


def format_month(d: date) -> str:
    return d.strftime(MONTH_FORMAT)


def parse_month(month_str: str) -> date | None:
    """Return the first day of the given YYYY-MM month string."""
    if not month_str:
        return None
    try:
        return datetime.strptime(month_str, MONTH_FORMAT).date()
    except ValueError:
        return None


def month_period(month_str: str) -> tuple[date, date]:
    """Return the half-open period [first day, first day of next month) for a YYYY-MM month."""
    d = parse_month(month_str)
    if d is None:
        raise ValueError(f"Invalid month: {month_str}")
    return d, add_months(d, 1)


def prev_month(month_str: str) -> str:
    d = parse_month(month_str)
    if d is None:
        raise ValueError(f"Invalid month: {month_str}")
    return format_month(add_months(d, -1))


def next_month(month_str: str) -> str:
    d = parse_month(month_str)
    if d is None:
        raise ValueError(f"Invalid month: {month_str}")
    return format_month(add_months(d, 1))


def clamp_day_to_month(year: int, month: int, day: int) -> int:
    """Clamp day to valid range for the given year/month."""
    max_day = calendar.monthrange(year, month)[1]
    return min(day, max_day)


def add_months(d: date, n: int) -> date:
    """Add n months to date d, clamping day to month end."""
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    day = clamp_day_to_month(year, month, d.day)
    return d.replace(year=year, month=month, day=day)
