"""Number parsing utilities for form input (1,234.56 style)."""
import re
from decimal import Decimal, InvalidOperation

NUMBER_PATTERN = re.compile(r"^-?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$")


def parse_decimal(value) -> Decimal:
    """
    Parse a number typed into a form (e.g., 1,234.56 or 1234.5) to Decimal.

    Rules:
    - Thousands separator: comma (,), optional but must group by three
    - Decimal separator: dot (.)
    - Sign is preserved so range checks can reject negatives explicitly

    Raises:
        ValueError: if the value is invalid or empty.
    """
    if value is None:
        raise ValueError('請輸入數字')

    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))

    cleaned = str(value).strip()
    if not cleaned:
        raise ValueError('請輸入數字')

    if not NUMBER_PATTERN.match(cleaned):
        raise ValueError('數字格式不正確')

    try:
        return Decimal(cleaned.replace(',', ''))
    except (InvalidOperation, ValueError):
        raise ValueError('數字格式不正確')
