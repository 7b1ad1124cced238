"""Display formatting for exported and rendered invoice values (en-US)."""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

_CENTS = Decimal("0.01")
_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥", "INR": "₹"}

Number = Union[int, float, Decimal]


def format_currency(value: Optional[Number], currency: str = "USD") -> str:
    """1234.5 -> "$1,234.50"; unknown codes render as "1,234.50 CHF"."""
    if value is None:
        return ""
    try:
        amount = Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return str(value)
    code = currency.upper()
    sign = "-" if amount < 0 else ""
    body = f"{abs(amount):,.2f}"
    symbol = _CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f"{sign}{symbol}{body}"
    return f"{sign}{body} {code}"


def _coerce_date(value: Union[date, datetime, str]) -> Optional[date]:
    if isinstance(value, (date, datetime)):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def format_date(value: Union[date, datetime, str, None]) -> str:
    """ISO date or datetime -> "Oct 20, 2025"; unparseable input -> ""."""
    if not value:
        return ""
    d = _coerce_date(value)
    if d is None:
        return ""
    return f"{d.strftime('%b')} {d.day}, {d.year}"


def format_number(value: Optional[Number], decimals: Optional[int] = None) -> str:
    if value is None:
        return ""
    if decimals is None:
        return f"{value:,}"
    return f"{value:,.{decimals}f}"


_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def csv_cell(value: Optional[str]) -> str:
    """Free text for a CSV cell; a leading formula character is quoted with "'"."""
    if not value:
        return ""
    if value.startswith(_FORMULA_PREFIXES):
        return f"'{value}"
    return value
