"""Quote service: numbering, create/update/delete and aggregate loading."""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import BusinessLogicError, NotFoundError, QuoteValidationError
from app.models import Bank, Customer, Product, Quote, QuoteItem, QuoteShare, QuoteStatus, Staff
from app.services.quote_aggregate import QuoteAggregate, build_quote_aggregate
from app.services.quote_validation import QuoteDraft, item_rows, validate_draft
from app.services.totals import Totals, compute_totals, line_amount, to_decimal
from app.utils.number_format import parse_decimal

logger = logging.getLogger(__name__)

QUOTE_NUMBER_PREFIX = 'Q'


def generate_quote_number(session: Session, user_id: str, today: Optional[date] = None) -> str:
    """
    ``Q`` + ``YYYYMMDD`` + 4-digit daily sequence, per owner.

    The sequence is the count of today's numbers plus one, moved forward
    past any number that already exists. Two concurrent requests can still
    draw the same number; nothing in the schema forbids it.
    """
    today = today or date.today()
    prefix = f"{QUOTE_NUMBER_PREFIX}{today.strftime('%Y%m%d')}"
    base = session.query(Quote).filter(
        Quote.user_id == user_id,
        Quote.quote_number.like(f"{prefix}%")
    ).count()

    sequence = base + 1
    while session.query(Quote.id).filter(
        Quote.user_id == user_id,
        Quote.quote_number == f"{prefix}{sequence:04d}"
    ).first():
        sequence += 1
    return f"{prefix}{sequence:04d}"


def _lenient_decimal(value: Any, default: Decimal) -> Decimal:
    try:
        return parse_decimal(value)
    except ValueError:
        return default


def apply_product_to_item(item: Mapping[str, Any], product: Any) -> Dict[str, Any]:
    """
    Copy a product into a line item (copy-on-select).

    Name, description (falls back to the name), unit and default price
    replace whatever the row held; quantity is kept and the amount is
    recomputed from it.
    """
    updated = dict(item)
    quantity = _lenient_decimal(item.get('quantity'), Decimal('1'))
    unit_price = to_decimal(product.default_price)
    updated.update(
        product_id=product.id,
        product_name=product.name,
        description=product.description or product.name,
        unit=product.unit,
        quantity=quantity,
        unit_price=unit_price,
        amount=line_amount(quantity, unit_price),
    )
    return updated


def preview_totals(form: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Totals for a form that is still being edited.

    Unparseable cells count as zero so the preview keeps up with typing;
    validation happens on save.
    """
    rows = item_rows(form)
    items = [
        {
            'quantity': _lenient_decimal(row.get('quantity'), Decimal('0')),
            'unit_price': _lenient_decimal(row.get('unit_price'), Decimal('0')),
        }
        for row in rows
    ]
    raw_rate = form.get('tax_rate')
    tax_rate = None if raw_rate in (None, '') else _lenient_decimal(raw_rate, Decimal('0'))
    totals = compute_totals(items, tax_rate)
    return {
        'totals': totals,
        'amounts': [line_amount(i['quantity'], i['unit_price']) for i in items],
    }


def _owned(session: Session, model, user_id: str, entity_id: Optional[str]):
    if not entity_id:
        return None
    return session.query(model).filter(model.id == entity_id, model.user_id == user_id).first()


def _check_references(session: Session, user_id: str, draft: QuoteDraft) -> None:
    errors = {}
    if not _owned(session, Customer, user_id, draft.customer_id):
        errors['customer_id'] = '請選擇客戶'
    if not _owned(session, Staff, user_id, draft.staff_id):
        errors['staff_id'] = '請選擇負責人'
    if not _owned(session, Bank, user_id, draft.bank_id):
        errors['bank_id'] = '請選擇銀行'
    if errors:
        raise QuoteValidationError(errors)


def _insert_items(session: Session, user_id: str, quote_id: str, draft: QuoteDraft) -> None:
    product_ids = {item.product_id for item in draft.items if item.product_id}
    known = set()
    if product_ids:
        known = {
            row.id for row in session.query(Product.id).filter(
                Product.id.in_(product_ids), Product.user_id == user_id
            )
        }
    for position, item in enumerate(draft.items):
        session.add(QuoteItem(
            quote_id=quote_id,
            product_id=item.product_id if item.product_id in known else None,
            product_name=item.product_name,
            description=item.description or None,
            quantity=item.quantity,
            unit=item.unit,
            unit_price=item.unit_price,
            amount=line_amount(item.quantity, item.unit_price),
            sort_order=position,
        ))


def _apply_totals(quote: Quote, totals: Totals) -> None:
    quote.subtotal = totals.subtotal
    quote.tax_rate = totals.tax_rate
    quote.tax_amount = totals.tax_amount
    quote.total = totals.total


def _validate(draft: QuoteDraft) -> None:
    errors = validate_draft(draft)
    if errors:
        raise QuoteValidationError(errors)


def create_quote(session: Session, user_id: str, draft: QuoteDraft, today: Optional[date] = None) -> Quote:
    """Validate and insert a quote with its items in one transaction."""
    _validate(draft)

    try:
        _check_references(session, user_id, draft)
        totals = compute_totals(draft.items, draft.tax_rate)

        quote = Quote(
            user_id=user_id,
            customer_id=draft.customer_id,
            staff_id=draft.staff_id,
            bank_id=draft.bank_id,
            quote_number=generate_quote_number(session, user_id, today),
            contact_person=draft.contact_person,
            quote_date=draft.quote_date,
            valid_until=draft.valid_until,
            status=draft.status,
            notes=draft.notes or None,
        )
        _apply_totals(quote, totals)
        session.add(quote)
        session.flush()

        _insert_items(session, user_id, quote.id, draft)
        session.commit()
        logger.info(f"[QUOTE] Created {quote.quote_number} ({len(draft.items)} items, total={totals.total}) user={user_id}")
        return quote
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[QUOTE] Create failed for user={user_id}")
        raise BusinessLogicError('建立報價單失敗，請稍後再試') from e


def update_quote(session: Session, user_id: str, quote_id: str, draft: QuoteDraft) -> Quote:
    """Replace a quote's fields and items wholesale (last write wins)."""
    _validate(draft)

    try:
        quote = _owned(session, Quote, user_id, quote_id)
        if not quote:
            raise NotFoundError('找不到報價單')
        _check_references(session, user_id, draft)
        totals = compute_totals(draft.items, draft.tax_rate)

        session.query(QuoteItem).filter(QuoteItem.quote_id == quote.id).delete(synchronize_session=False)
        _insert_items(session, user_id, quote.id, draft)

        quote.customer_id = draft.customer_id
        quote.staff_id = draft.staff_id
        quote.bank_id = draft.bank_id
        quote.contact_person = draft.contact_person
        quote.quote_date = draft.quote_date
        quote.valid_until = draft.valid_until
        quote.status = draft.status
        quote.notes = draft.notes or None
        _apply_totals(quote, totals)

        session.commit()
        session.expire(quote, ['items', 'customer'])
        logger.info(f"[QUOTE] Updated {quote.quote_number} ({len(draft.items)} items, total={totals.total})")
        return quote
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[QUOTE] Update failed for quote={quote_id}")
        raise BusinessLogicError('更新報價單失敗，請稍後再試') from e


def update_quote_status(session: Session, user_id: str, quote_id: str, status: str) -> Quote:
    """Set any status; there are no transition rules."""
    if status not in {s.value for s in QuoteStatus}:
        raise BusinessLogicError('狀態不正確')

    try:
        quote = _owned(session, Quote, user_id, quote_id)
        if not quote:
            raise NotFoundError('找不到報價單')
        previous = quote.status
        quote.status = status
        session.commit()
        logger.info(f"[QUOTE] Status {quote.quote_number}: {previous} -> {status}")
        return quote
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except SQLAlchemyError as e:
        session.rollback()
        raise BusinessLogicError('更新狀態失敗，請稍後再試') from e


def delete_quote(session: Session, user_id: str, quote_id: str) -> None:
    """Delete items, then share links, then the quote, in one transaction."""
    try:
        quote = _owned(session, Quote, user_id, quote_id)
        if not quote:
            raise NotFoundError('找不到報價單')
        number = quote.quote_number

        session.expunge(quote)
        session.query(QuoteItem).filter(QuoteItem.quote_id == quote_id).delete(synchronize_session=False)
        session.query(QuoteShare).filter(QuoteShare.quote_id == quote_id).delete(synchronize_session=False)
        session.query(Quote).filter(Quote.id == quote_id).delete(synchronize_session=False)
        session.commit()
        logger.info(f"[QUOTE] Deleted {number} user={user_id}")
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[QUOTE] Delete failed for quote={quote_id}")
        raise BusinessLogicError('刪除報價單失敗，請稍後再試') from e


def assemble_quote(session: Session, quote: Quote) -> QuoteAggregate:
    """
    Fetch the related rows of ``quote`` one by one and build the aggregate.

    Related rows are looked up under the quote's owner; a row that no
    longer exists simply does not resolve.
    """
    owner = quote.user_id
    customer = _owned(session, Customer, owner, quote.customer_id)
    staff = _owned(session, Staff, owner, quote.staff_id)
    bank = _owned(session, Bank, owner, quote.bank_id)
    items = session.query(QuoteItem).filter(QuoteItem.quote_id == quote.id).all()
    return build_quote_aggregate(quote, customer=customer, staff=staff, bank=bank, items=items)


def get_quote(session: Session, user_id: str, quote_id: str) -> Quote:
    quote = _owned(session, Quote, user_id, quote_id)
    if not quote:
        raise NotFoundError('找不到報價單')
    return quote


def get_quote_aggregate(session: Session, user_id: str, quote_id: str) -> QuoteAggregate:
    return assemble_quote(session, get_quote(session, user_id, quote_id))


def list_quotes(session: Session, user_id: str, status: Optional[str] = None,
                search: Optional[str] = None) -> List[Quote]:
    """Owner's quotes, newest first, optionally filtered by status and free text."""
    query = session.query(Quote).outerjoin(Customer, Customer.id == Quote.customer_id).filter(
        Quote.user_id == user_id
    )
    if status:
        query = query.filter(Quote.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Quote.quote_number.ilike(pattern),
            Quote.contact_person.ilike(pattern),
            Customer.company_name.ilike(pattern),
        ))
    return query.order_by(Quote.created_at.desc(), Quote.quote_number.desc()).all()


def list_quote_aggregates(session: Session, user_id: str, status: Optional[str] = None,
                          search: Optional[str] = None) -> List[QuoteAggregate]:
    return [assemble_quote(session, quote) for quote in list_quotes(session, user_id, status, search)]
