"""
Form parsing and validation for quotes and catalog entities.

Errors are collected per form field (``items[2][quantity]``) so the form can
show them inline; nothing here touches the database.
"""
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.models import QuoteStatus
from app.utils.number_format import parse_decimal

ITEM_FIELD_PATTERN = re.compile(r'^items\[(\d+)\]\[(\w+)\]$')
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

ITEM_FIELDS = ('product_id', 'product_name', 'description', 'quantity', 'unit', 'unit_price')

MIN_QUANTITY = Decimal('0.01')
# Matches the scale of the quantity, price and tax rate columns
MAX_DECIMAL_PLACES = 2
MIN_TAX_RATE = Decimal('0')
MAX_TAX_RATE = Decimal('100')

ITEMS_REQUIRED_MESSAGE = '至少需要一個項目'
DECIMAL_PLACES_MESSAGE = f'最多只能輸入 {MAX_DECIMAL_PLACES} 位小數'


@dataclass
class ItemDraft:
    product_id: Optional[str]
    product_name: str
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    sort_order: int = 0


@dataclass
class QuoteDraft:
    customer_id: str
    contact_person: str
    staff_id: str
    bank_id: str
    quote_date: Optional[date]
    valid_until: Optional[date]
    tax_rate: Decimal
    notes: str = ''
    status: str = QuoteStatus.DRAFT.value
    items: List[ItemDraft] = field(default_factory=list)


def _text(form: Mapping[str, Any], key: str) -> str:
    value = form.get(key)
    return str(value).strip() if value is not None else ''


def item_rows(form: Mapping[str, Any]) -> List[Dict[str, str]]:
    """
    Raw item rows from ``items[i][field]`` keys, ordered by index.

    Row indexes need not be contiguous (rows removed in the browser leave
    gaps); they are renumbered by position.
    """
    rows: Dict[int, Dict[str, str]] = {}
    for key in form.keys():
        match = ITEM_FIELD_PATTERN.match(key)
        if not match:
            continue
        index, name = int(match.group(1)), match.group(2)
        if name in ITEM_FIELDS:
            rows.setdefault(index, {})[name] = _text(form, key)
    return [
        {name: rows[index].get(name, '') for name in ITEM_FIELDS}
        for index in sorted(rows)
    ]


def _parse_date(raw: str, key: str, message: str, errors: Dict[str, str]) -> Optional[date]:
    if not raw:
        errors[key] = message
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        errors[key] = '日期格式不正確'
        return None


def decimal_places(value: Decimal) -> int:
    exponent = Decimal(value).normalize().as_tuple().exponent
    return -exponent if exponent < 0 else 0


def _parse_number(raw: str, key: str, errors: Dict[str, str]) -> Optional[Decimal]:
    try:
        value = parse_decimal(raw)
    except ValueError as e:
        errors[key] = str(e)
        return None
    if decimal_places(value) > MAX_DECIMAL_PLACES:
        errors[key] = DECIMAL_PLACES_MESSAGE
        return None
    return value


def parse_item(row: Mapping[str, str], position: int, errors: Dict[str, str]) -> Optional[ItemDraft]:
    prefix = f'items[{position}]'
    if not row.get('product_name'):
        errors[f'{prefix}[product_name]'] = '請輸入產品名稱'
    if not row.get('unit'):
        errors[f'{prefix}[unit]'] = '請輸入單位'

    quantity = _parse_number(row.get('quantity', ''), f'{prefix}[quantity]', errors)
    if quantity is not None and quantity < MIN_QUANTITY:
        errors[f'{prefix}[quantity]'] = '數量必須大於0'
        quantity = None

    unit_price = _parse_number(row.get('unit_price', ''), f'{prefix}[unit_price]', errors)
    if unit_price is not None and unit_price < 0:
        errors[f'{prefix}[unit_price]'] = '單價不能為負數'
        unit_price = None

    if quantity is None or unit_price is None or not row.get('product_name') or not row.get('unit'):
        return None
    return ItemDraft(
        product_id=row.get('product_id') or None,
        product_name=row['product_name'],
        description=row.get('description', ''),
        quantity=quantity,
        unit=row['unit'],
        unit_price=unit_price,
        sort_order=position,
    )


def parse_quote_form(form: Mapping[str, Any]) -> Tuple[QuoteDraft, Dict[str, str]]:
    """
    Parse and validate a submitted quote form.

    Returns the draft and a dict of field errors; the draft is only safe
    to persist when the dict is empty.
    """
    errors: Dict[str, str] = {}

    required = (
        ('customer_id', '請選擇客戶'),
        ('contact_person', '請輸入聯絡人'),
        ('staff_id', '請選擇負責人'),
        ('bank_id', '請選擇銀行'),
    )
    for key, message in required:
        if not _text(form, key):
            errors[key] = message

    quote_date = _parse_date(_text(form, 'quote_date'), 'quote_date', '請選擇報價日期', errors)
    valid_until = _parse_date(_text(form, 'valid_until'), 'valid_until', '請選擇有效期限', errors)
    if quote_date and valid_until and valid_until < quote_date:
        errors['valid_until'] = '有效期限不能早於報價日期'

    raw_rate = _text(form, 'tax_rate')
    tax_rate = Decimal('5') if raw_rate == '' else _parse_number(raw_rate, 'tax_rate', errors)
    if tax_rate is not None and not (MIN_TAX_RATE <= tax_rate <= MAX_TAX_RATE):
        errors['tax_rate'] = '稅率必須介於 0 到 100 之間'

    status = _text(form, 'status') or QuoteStatus.DRAFT.value
    if status not in {s.value for s in QuoteStatus}:
        errors['status'] = '狀態不正確'

    rows = item_rows(form)
    if not rows:
        errors['items'] = ITEMS_REQUIRED_MESSAGE
    items = [parse_item(row, position, errors) for position, row in enumerate(rows)]

    draft = QuoteDraft(
        customer_id=_text(form, 'customer_id'),
        contact_person=_text(form, 'contact_person'),
        staff_id=_text(form, 'staff_id'),
        bank_id=_text(form, 'bank_id'),
        quote_date=quote_date,
        valid_until=valid_until,
        tax_rate=tax_rate if tax_rate is not None else Decimal('5'),
        notes=_text(form, 'notes'),
        status=status,
        items=[item for item in items if item is not None],
    )
    return draft, errors


def validate_draft(draft: QuoteDraft) -> Dict[str, str]:
    """Checks for drafts built in code rather than parsed from a form."""
    errors: Dict[str, str] = {}
    for key in ('customer_id', 'contact_person', 'staff_id', 'bank_id', 'quote_date', 'valid_until'):
        if not getattr(draft, key):
            errors[key] = '此欄位為必填'
    if draft.quote_date and draft.valid_until and draft.valid_until < draft.quote_date:
        errors['valid_until'] = '有效期限不能早於報價日期'
    if not (MIN_TAX_RATE <= Decimal(draft.tax_rate) <= MAX_TAX_RATE):
        errors['tax_rate'] = '稅率必須介於 0 到 100 之間'
    elif decimal_places(draft.tax_rate) > MAX_DECIMAL_PLACES:
        errors['tax_rate'] = DECIMAL_PLACES_MESSAGE
    if not draft.items:
        errors['items'] = ITEMS_REQUIRED_MESSAGE
    for position, item in enumerate(draft.items):
        prefix = f'items[{position}]'
        if not item.product_name:
            errors[f'{prefix}[product_name]'] = '請輸入產品名稱'
        if not item.unit:
            errors[f'{prefix}[unit]'] = '請輸入單位'
        if Decimal(item.quantity) < MIN_QUANTITY:
            errors[f'{prefix}[quantity]'] = '數量必須大於0'
        if Decimal(item.unit_price) < 0:
            errors[f'{prefix}[unit_price]'] = '單價不能為負數'
        for name in ('quantity', 'unit_price'):
            if decimal_places(getattr(item, name)) > MAX_DECIMAL_PLACES:
                errors[f'{prefix}[{name}]'] = DECIMAL_PLACES_MESSAGE
    return errors


# Catalog entities: each returns (cleaned values, errors)

def _clean(form: Mapping[str, Any], keys) -> Dict[str, Optional[str]]:
    return {key: _text(form, key) or None for key in keys}


def _check_email(values: Dict[str, Optional[str]], errors: Dict[str, str]) -> None:
    if values.get('email') and not EMAIL_PATTERN.match(values['email']):
        errors['email'] = '電子郵件格式不正確'


def validate_customer_form(form: Mapping[str, Any]):
    values = _clean(form, ('company_name', 'contact_person', 'phone', 'email', 'address', 'tax_id', 'notes'))
    errors: Dict[str, str] = {}
    if not values['company_name']:
        errors['company_name'] = '請輸入公司名稱'
    if not values['contact_person']:
        errors['contact_person'] = '請輸入聯絡人'
    _check_email(values, errors)
    if values['tax_id'] and not re.fullmatch(r'\d{8}', values['tax_id']):
        errors['tax_id'] = '統一編號必須為8位數字'
    return values, errors


def validate_product_form(form: Mapping[str, Any]):
    values = _clean(form, ('name', 'description', 'unit', 'default_price'))
    errors: Dict[str, str] = {}
    if not values['name']:
        errors['name'] = '請輸入產品名稱'
    if not values['unit']:
        errors['unit'] = '請輸入單位'
    price = _parse_number(values['default_price'] or '0', 'default_price', errors)
    if price is not None and price < 0:
        errors['default_price'] = '單價不能為負數'
    values['default_price'] = price
    return values, errors


def validate_staff_form(form: Mapping[str, Any]):
    values = _clean(form, ('name', 'title', 'phone', 'email'))
    errors: Dict[str, str] = {}
    if not values['name']:
        errors['name'] = '請輸入姓名'
    _check_email(values, errors)
    return values, errors


def validate_bank_form(form: Mapping[str, Any]):
    values = _clean(form, ('bank_name', 'account_name', 'account_number', 'branch_name', 'swift_code', 'notes'))
    errors: Dict[str, str] = {}
    if not values['bank_name']:
        errors['bank_name'] = '請輸入銀行名稱'
    if not values['account_name']:
        errors['account_name'] = '請輸入戶名'
    if not values['account_number']:
        errors['account_number'] = '請輸入帳戶號碼'
    return values, errors
