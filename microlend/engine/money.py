"""Currency and calendar-month helpers shared by the engine."""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from dateutil.relativedelta import relativedelta

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_cents(value: Decimal) -> Decimal:
    """Round a currency amount half-up to cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def month_key(value: date | datetime) -> str:
    """Return the ``YYYY-MM`` key of the calendar month containing ``value``."""
    return f"{value.year:04d}-{value.month:02d}"


def first_of_month(value: date | datetime) -> date:
    return date(value.year, value.month, 1)


def add_months(value: date, months: int) -> date:
    return value + relativedelta(months=months)
