"""
Quote aggregate builder.

Assembles a quote row and its separately fetched customer, staff, bank and
items into one immutable object for rendering and editing. Missing
relations never fail the build: they become ``Unresolved`` with a stable
display label, so renderers branch on one variant instead of null-checking
every field.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from app.services.totals import Totals, compute_totals, line_amount, to_decimal

UNKNOWN_CUSTOMER_LABEL = '未知客戶'


@dataclass(frozen=True)
class Unresolved:
    """A relation whose row could not be found (deleted or never set)."""
    label: str = ''

    def __bool__(self):
        return False


@dataclass(frozen=True)
class CustomerInfo:
    id: str
    company_name: str
    contact_person: str = ''
    phone: str = ''
    email: str = ''
    address: str = ''
    tax_id: str = ''

    @property
    def label(self) -> str:
        return self.company_name


@dataclass(frozen=True)
class StaffInfo:
    id: str
    name: str
    title: str = ''
    phone: str = ''
    email: str = ''

    @property
    def label(self) -> str:
        return self.name


@dataclass(frozen=True)
class BankInfo:
    id: str
    bank_name: str
    account_name: str
    account_number: str
    branch_name: str = ''
    swift_code: str = ''
    notes: str = ''

    @property
    def label(self) -> str:
        return f"{self.bank_name} {self.account_number}"


@dataclass(frozen=True)
class ItemInfo:
    id: Optional[str]
    product_id: Optional[str]
    product_name: str
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    sort_order: int

    @property
    def amount(self) -> Decimal:
        """Recomputed on every access; never read from a stored column."""
        return line_amount(self.quantity, self.unit_price)


@dataclass(frozen=True)
class QuoteAggregate:
    id: Optional[str]
    quote_number: str
    status: str
    quote_date: Optional[date]
    valid_until: Optional[date]
    contact_person: str
    notes: str
    customer: Union[CustomerInfo, Unresolved]
    staff: Union[StaffInfo, Unresolved]
    bank: Union[BankInfo, Unresolved]
    items: Tuple[ItemInfo, ...]
    totals: Totals
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    customer_id: Optional[str] = field(default=None, compare=False)
    staff_id: Optional[str] = field(default=None, compare=False)
    bank_id: Optional[str] = field(default=None, compare=False)

    @property
    def customer_label(self) -> str:
        return self.customer.label

    @property
    def has_items(self) -> bool:
        return bool(self.items)


def is_resolved(value: Any) -> bool:
    return not isinstance(value, Unresolved)


def _get(row: Any, name: str, default: Any = None) -> Any:
    if row is None:
        return default
    if isinstance(row, Mapping):
        value = row.get(name, default)
    else:
        value = getattr(row, name, default)
    return default if value is None else value


def _customer_info(row: Any) -> Union[CustomerInfo, Unresolved]:
    if row is None:
        return Unresolved(UNKNOWN_CUSTOMER_LABEL)
    return CustomerInfo(
        id=_get(row, 'id'),
        company_name=_get(row, 'company_name', '') or UNKNOWN_CUSTOMER_LABEL,
        contact_person=_get(row, 'contact_person', ''),
        phone=_get(row, 'phone', ''),
        email=_get(row, 'email', ''),
        address=_get(row, 'address', ''),
        tax_id=_get(row, 'tax_id', ''),
    )


def _staff_info(row: Any) -> Union[StaffInfo, Unresolved]:
    if row is None:
        return Unresolved('')
    return StaffInfo(
        id=_get(row, 'id'),
        name=_get(row, 'name', ''),
        title=_get(row, 'title', ''),
        phone=_get(row, 'phone', ''),
        email=_get(row, 'email', ''),
    )


def _bank_info(row: Any) -> Union[BankInfo, Unresolved]:
    if row is None:
        return Unresolved('')
    return BankInfo(
        id=_get(row, 'id'),
        bank_name=_get(row, 'bank_name', ''),
        account_name=_get(row, 'account_name', ''),
        account_number=_get(row, 'account_number', ''),
        branch_name=_get(row, 'branch_name', ''),
        swift_code=_get(row, 'swift_code', ''),
        notes=_get(row, 'notes', ''),
    )


def _item_info(row: Any, position: int) -> ItemInfo:
    sort_order = _get(row, 'sort_order')
    return ItemInfo(
        id=_get(row, 'id'),
        product_id=_get(row, 'product_id'),
        product_name=_get(row, 'product_name', ''),
        description=_get(row, 'description', ''),
        quantity=to_decimal(_get(row, 'quantity', 0)),
        unit=_get(row, 'unit', ''),
        unit_price=to_decimal(_get(row, 'unit_price', 0)),
        sort_order=position if sort_order is None else int(sort_order),
    )


def sort_items(items: Iterable[Any]) -> Tuple[ItemInfo, ...]:
    """Order by sort_order ascending; ties keep fetch order (stable sort)."""
    infos = [_item_info(row, position) for position, row in enumerate(items or [])]
    return tuple(sorted(infos, key=lambda item: item.sort_order))


def build_quote_aggregate(
    quote: Any,
    customer: Any = None,
    staff: Any = None,
    bank: Any = None,
    items: Iterable[Any] = (),
) -> QuoteAggregate:
    """
    Build the aggregate for one quote.

    ``quote`` and the related rows may be ORM instances or plain mappings;
    ``None`` for a relation means it did not resolve. The backing store is
    not assumed to return items sorted.
    """
    ordered = sort_items(items)
    totals = compute_totals(ordered, _get(quote, 'tax_rate'))

    return QuoteAggregate(
        id=_get(quote, 'id'),
        quote_number=_get(quote, 'quote_number', ''),
        status=_get(quote, 'status', 'draft'),
        quote_date=_get(quote, 'quote_date'),
        valid_until=_get(quote, 'valid_until'),
        contact_person=_get(quote, 'contact_person', ''),
        notes=_get(quote, 'notes', ''),
        customer=_customer_info(customer),
        staff=_staff_info(staff),
        bank=_bank_info(bank),
        items=ordered,
        totals=totals,
        owner_id=_get(quote, 'user_id'),
        created_at=_get(quote, 'created_at'),
        updated_at=_get(quote, 'updated_at'),
        customer_id=_get(quote, 'customer_id'),
        staff_id=_get(quote, 'staff_id'),
        bank_id=_get(quote, 'bank_id'),
    )
