"""Display helpers shared by alert descriptions and chart labels."""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

CURRENCY_SYMBOLS = {"EUR": "€", "USD": "$", "GBP": "£"}


def format_currency(value: Decimal, currency: str = "EUR") -> str:
    """Format an amount with two decimals and thousands separators.

    >>> format_currency(Decimal("7500.5"))
    '€7,500.50'
    """
    quantized = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if quantized < 0 else ""
    text = f"{abs(quantized):,.2f}"
    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    if symbol:
        return f"{sign}{symbol}{text}"
    return f"{sign}{text} {currency.upper()}"


def round_percent(value: Decimal) -> int:
    """Round to the nearest whole percent, halves away from zero."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def month_name(month_index: int) -> str:
    """Short month name for a zero-based month index."""
    return MONTH_NAMES[month_index]


def month_label(day: date) -> str:
    """Month-year chart label, e.g. ``Jan '24``."""
    return f"{MONTH_NAMES[day.month - 1]} '{day.year % 100:02d}"
