"""
Totals engine for quote line items.

The interactive form preview, the persisted quote row and the rendered
document all derive subtotal/tax/total through ``compute_totals``; no
other code multiplies quantities by prices or applies the tax rate.
Values are exact ``Decimal`` arithmetic; rounding happens only when a
figure is formatted for display.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping, Union

DEFAULT_TAX_RATE = Decimal('5')
ZERO = Decimal('0')

Numeric = Union[int, float, str, Decimal]


def to_decimal(value: Numeric) -> Decimal:
    """Convert form/DB values to Decimal without binary float artefacts."""
    if value is None or value == '':
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def line_amount(quantity: Numeric, unit_price: Numeric) -> Decimal:
    """quantity * unit_price at full precision."""
    return to_decimal(quantity) * to_decimal(unit_price)


def calculate_subtotal(items: Iterable[Any]) -> Decimal:
    """Sum of quantity * unit_price over the items, in the given order."""
    subtotal = ZERO
    for item in items:
        subtotal += line_amount(_field(item, 'quantity'), _field(item, 'unit_price'))
    return subtotal


def calculate_tax(subtotal: Numeric, tax_rate: Numeric) -> Decimal:
    """subtotal * (tax_rate / 100); tax_rate is a percentage."""
    return to_decimal(subtotal) * (to_decimal(tax_rate) / Decimal('100'))


def calculate_total(subtotal: Numeric, tax_amount: Numeric) -> Decimal:
    return to_decimal(subtotal) + to_decimal(tax_amount)


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    item_count: int

    @property
    def is_empty(self) -> bool:
        return self.item_count == 0


def compute_totals(items: Iterable[Any], tax_rate: Numeric = None) -> Totals:
    """Subtotal, then tax, then total - always in this order."""
    items = list(items)
    rate = DEFAULT_TAX_RATE if tax_rate is None or tax_rate == '' else to_decimal(tax_rate)
    subtotal = calculate_subtotal(items)
    tax_amount = calculate_tax(subtotal, rate)
    total = calculate_total(subtotal, tax_amount)
    return Totals(
        subtotal=subtotal,
        tax_rate=rate,
        tax_amount=tax_amount,
        total=total,
        item_count=len(items),
    )
