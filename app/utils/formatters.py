"""
Formatting helpers for templates and exports.
zh-TW formats: NT$ amounts, YYYY/MM/DD dates.

The same functions back the Jinja filters (preview, print, HTML export)
and the PDF renderers, so the three outputs never drift apart.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, datetime
from typing import Union, Optional

Number = Union[int, float, Decimal, str, None]

CURRENCY_PREFIX = 'NT$'


def _to_decimal(value: Number) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        if isinstance(value, str):
            value = value.replace(",", "").strip()
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


def _group_thousands(integer_part: str) -> str:
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    return ','.join(groups)[::-1]


def num_tw(value: Number, max_decimals: int = 3) -> str:
    """
    Format a number with comma thousands grouping and at most ``max_decimals``
    decimals, trailing zeros dropped (half-up rounding).
    
    Examples:
        num_tw(1500) -> "1,500"
        num_tw(12.5) -> "12.5"
        num_tw(262.5) -> "262.5"
        num_tw(1234567.891) -> "1,234,567.891"
        num_tw(None) -> "-"
    """
    num = _to_decimal(value)
    if num is None:
        return "-"
    
    num = num.quantize(Decimal(10) ** -max_decimals, rounding=ROUND_HALF_UP)
    if num == 0:
        return "0"
    
    sign = "-" if num < 0 else ""
    integer_part, _, decimal_part = f"{abs(num):f}".partition('.')
    decimal_part = decimal_part.rstrip('0')
    
    integer_formatted = _group_thousands(integer_part)
    if decimal_part:
        return f"{sign}{integer_formatted}.{decimal_part}"
    return f"{sign}{integer_formatted}"


def format_currency(value: Number) -> str:
    """
    Format an amount as ``NT$ 1,234.5``.
    
    Examples:
        format_currency(250) -> "NT$ 250"
        format_currency(12.5) -> "NT$ 12.5"
        format_currency(None) -> "NT$ 0"
    """
    formatted = num_tw(value)
    if formatted == "-":
        formatted = "0"
    return f"{CURRENCY_PREFIX} {formatted}"


def format_quantity(value: Number) -> str:
    """Quantities print without grouping noise: 2 -> "2", 1.50 -> "1.5"."""
    return num_tw(value, max_decimals=2)


def format_percent(value: Number) -> str:
    """5 -> "5%", 5.50 -> "5.5%"."""
    return f"{num_tw(value, max_decimals=2)}%"


def date_tw(value: Union[date, datetime, str, None]) -> str:
    """
    Format a date as YYYY/MM/DD (invalid ISO strings give "無效日期").
    
    Examples:
        date_tw(date(2026, 1, 12)) -> "2026/01/12"
    """
    if value is None:
        return "-"
    
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            return "無效日期"
    
    if isinstance(value, datetime):
        value = value.date()
    
    if not isinstance(value, date):
        return "-"
    
    return value.strftime("%Y/%m/%d")


def datetime_tw(value: Union[datetime, None]) -> str:
    """
    Format a datetime as YYYY/MM/DD HH:MM:SS.
    
    Examples:
        datetime_tw(datetime(2026, 1, 12, 15, 30)) -> "2026/01/12 15:30:00"
    """
    if value is None or not isinstance(value, datetime):
        return "-"
    return value.strftime("%Y/%m/%d %H:%M:%S")
