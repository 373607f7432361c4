"""Quotes blueprint (報價單): list, form, live preview, document views, exports and shares."""
from datetime import date, datetime, timedelta
from io import BytesIO
from typing import Any, Dict, List, Union

from flask import (
    Blueprint, Response, current_app, flash, g, jsonify, redirect, render_template, request,
    send_file, url_for
)

from app.blueprints.metrics import record_export
from app.database import get_session
from app.exceptions import ExportError, QuoteValidationError
from app.middleware import require_login
from app.models import Bank, Customer, Product, QuoteStatus, Staff
from app.services import catalog_service, quote_service, share_service
from app.services.document_service import Action, as_read_only, build_quote_document, render_quote_html
from app.services.export_service import (
    QUOTE_LABEL, build_export_filename, export_quote_list_pdf, export_quote_pdf
)
from app.services.quote_validation import ITEM_FIELDS, item_rows, parse_quote_form
from app.services.settings_service import load_bank_settings, load_company_settings
from app.utils.formatters import num_tw

quotes_bp = Blueprint('quotes', __name__, url_prefix='/quotes')

EMPTY_ROW = {'product_id': '', 'product_name': '', 'description': '', 'quantity': '1', 'unit': '個', 'unit_price': '0'}


def _is_htmx() -> bool:
    return request.headers.get('HX-Request') == 'true'


def _flatten(values: Dict[str, Any], rows: List[Dict[str, str]]) -> Dict[str, Any]:
    """Form values plus ``items[i][field]`` keys, the shape the browser posts."""
    flat = dict(values)
    for index, row in enumerate(rows):
        for name in ITEM_FIELDS:
            flat[f'items[{index}][{name}]'] = row.get(name, '')
    return flat


def _choices(session) -> Dict[str, Any]:
    user_id = g.user_id
    return {
        'customers': catalog_service.list_entities(session, Customer, user_id, order_by=Customer.company_name),
        'staff_members': catalog_service.list_entities(session, Staff, user_id, order_by=Staff.name),
        'banks': catalog_service.list_entities(session, Bank, user_id, order_by=Bank.bank_name),
        'products': catalog_service.list_entities(session, Product, user_id, order_by=Product.name),
    }


def _render_form(session, values, rows, errors=None, quote=None, status=200):
    preview = quote_service.preview_totals(_flatten(values, rows))
    return render_template(
        'quotes/form.html',
        quote=quote,
        form=values,
        rows=rows,
        errors=errors or {},
        preview=preview,
        **_choices(session),
    ), status


def _values_from_request() -> Dict[str, Any]:
    keys = ('customer_id', 'contact_person', 'staff_id', 'bank_id', 'quote_date',
            'valid_until', 'tax_rate', 'notes', 'status')
    return {key: request.form.get(key, '') for key in keys}


def _document_for(session, quote_id: str, read_only: bool = False, with_actions: bool = True):
    aggregate = quote_service.get_quote_aggregate(session, g.user_id, quote_id)
    actions = None
    if with_actions:
        actions = [
            Action('編輯', url_for('quotes.edit_quote', quote_id=quote_id), css='btn-primary'),
            Action('列印', url_for('quotes.print_quote', quote_id=quote_id), edit=False),
            Action('匯出PDF', url_for('quotes.download_pdf', quote_id=quote_id), edit=False),
            Action('匯出HTML', url_for('quotes.download_html', quote_id=quote_id), edit=False),
            Action('建立分享連結', url_for('quotes.create_share', quote_id=quote_id), method='post'),
            Action('刪除', url_for('quotes.delete_quote', quote_id=quote_id), method='post',
                   css='btn-outline-danger', confirm='確定要刪除此報價單嗎？'),
        ]
    upload_urls = None
    if not read_only:
        upload_urls = {
            'logo': url_for('settings.company'),
            'stamp': url_for('settings.company'),
            'bankbook': url_for('settings.bank'),
        }
    return build_quote_document(
        aggregate,
        load_company_settings(session, g.user_id),
        load_bank_settings(session, g.user_id),
        read_only=read_only,
        actions=actions,
        upload_urls=upload_urls,
    )


@quotes_bp.route('/')
@require_login
def list_quotes() -> str:
    """List the user's quotes, filtered by status and free text."""
    status = request.args.get('status', '').strip()
    if status not in {s.value for s in QuoteStatus}:
        status = ''
    search = request.args.get('q', '').strip()

    quotes = quote_service.list_quotes(get_session(), g.user_id, status or None, search or None)

    template = 'quotes/_list_table.html' if _is_htmx() else 'quotes/list.html'
    return render_template(template, quotes=quotes, status_filter=status, search_query=search)


@quotes_bp.route('/new', methods=['GET'])
@require_login
def new_quote() -> str:
    today = date.today()
    values = {
        'customer_id': '',
        'contact_person': '',
        'staff_id': '',
        'bank_id': '',
        'quote_date': today.isoformat(),
        'valid_until': (today + timedelta(days=current_app.config.get('QUOTE_VALID_DAYS', 30))).isoformat(),
        'tax_rate': str(current_app.config.get('DEFAULT_TAX_RATE', '5')),
        'notes': '',
        'status': QuoteStatus.DRAFT.value,
    }
    return _render_form(get_session(), values, [dict(EMPTY_ROW)])


@quotes_bp.route('/new', methods=['POST'])
@require_login
def create_quote() -> Union[str, Response]:
    session = get_session()
    values = _values_from_request()
    rows = item_rows(request.form)

    draft, errors = parse_quote_form(request.form)
    if errors:
        return _render_form(session, values, rows, errors, status=400)

    try:
        quote = quote_service.create_quote(session, g.user_id, draft)
    except QuoteValidationError as e:
        return _render_form(session, values, rows, e.errors, status=400)

    flash(f'報價單 {quote.quote_number} 已建立', 'success')
    return redirect(url_for('quotes.view_quote', quote_id=quote.id))


@quotes_bp.route('/<quote_id>/edit', methods=['GET'])
@require_login
def edit_quote(quote_id: str) -> str:
    session = get_session()
    aggregate = quote_service.get_quote_aggregate(session, g.user_id, quote_id)
    values = {
        'customer_id': aggregate.customer_id or '',
        'contact_person': aggregate.contact_person,
        'staff_id': aggregate.staff_id or '',
        'bank_id': aggregate.bank_id or '',
        'quote_date': aggregate.quote_date.isoformat() if aggregate.quote_date else '',
        'valid_until': aggregate.valid_until.isoformat() if aggregate.valid_until else '',
        'tax_rate': num_tw(aggregate.totals.tax_rate),
        'notes': aggregate.notes or '',
        'status': aggregate.status,
    }
    rows = [
        {
            'product_id': item.product_id or '',
            'product_name': item.product_name,
            'description': item.description or '',
            'quantity': num_tw(item.quantity),
            'unit': item.unit,
            'unit_price': num_tw(item.unit_price),
        }
        for item in aggregate.items
    ]
    return _render_form(session, values, rows or [dict(EMPTY_ROW)], quote=aggregate)


@quotes_bp.route('/<quote_id>/edit', methods=['POST'])
@require_login
def update_quote(quote_id: str) -> Union[str, Response]:
    session = get_session()
    aggregate = quote_service.get_quote_aggregate(session, g.user_id, quote_id)
    values = _values_from_request()
    rows = item_rows(request.form)

    draft, errors = parse_quote_form(request.form)
    if errors:
        return _render_form(session, values, rows, errors, quote=aggregate, status=400)

    try:
        quote = quote_service.update_quote(session, g.user_id, quote_id, draft)
    except QuoteValidationError as e:
        return _render_form(session, values, rows, e.errors, quote=aggregate, status=400)

    flash(f'報價單 {quote.quote_number} 已更新', 'success')
    return redirect(url_for('quotes.view_quote', quote_id=quote.id))


@quotes_bp.route('/preview-totals', methods=['POST'])
@require_login
def preview_totals() -> str:
    """HTMX: subtotal/tax/total and per-row amounts for the form being edited."""
    preview = quote_service.preview_totals(request.form)
    return render_template('quotes/_totals.html', preview=preview)


@quotes_bp.route('/apply-product', methods=['POST'])
@require_login
def apply_product():
    """Copy a product's details into an item row (JSON for the form script)."""
    payload = request.get_json(silent=True) or request.form
    product = catalog_service.get_entity(get_session(), Product, g.user_id, payload.get('product_id'), '產品')
    item = quote_service.apply_product_to_item(
        {'quantity': payload.get('quantity'), 'description': payload.get('description')}, product
    )
    return jsonify({
        'product_id': item['product_id'],
        'product_name': item['product_name'],
        'description': item['description'],
        'unit': item['unit'],
        'quantity': num_tw(item['quantity']),
        'unit_price': num_tw(item['unit_price']),
        'amount': num_tw(item['amount']),
    })


@quotes_bp.route('/<quote_id>')
@require_login
def view_quote(quote_id: str) -> str:
    session = get_session()
    document = _document_for(session, quote_id)
    shares = share_service.list_shares(session, g.user_id, quote_id)
    return render_template('quotes/view.html', document=document, shares=shares,
                           is_share_valid=share_service.is_share_valid)


@quotes_bp.route('/<quote_id>/print')
@require_login
def print_quote(quote_id: str) -> str:
    document = _document_for(get_session(), quote_id, read_only=True, with_actions=False)
    record_export('print')
    return render_template('quotes/print.html', document=document)


@quotes_bp.route('/<quote_id>/status', methods=['POST'])
@require_login
def change_status(quote_id: str) -> Response:
    quote = quote_service.update_quote_status(get_session(), g.user_id, quote_id, request.form.get('status', ''))
    flash(f'狀態已更新為「{quote.status_label}」', 'success')
    return redirect(url_for('quotes.view_quote', quote_id=quote_id))


@quotes_bp.route('/<quote_id>/delete', methods=['POST'])
@require_login
def delete_quote(quote_id: str) -> Response:
    quote_service.delete_quote(get_session(), g.user_id, quote_id)
    flash('報價單已刪除', 'success')
    if _is_htmx():
        response = Response('')
        response.headers['HX-Redirect'] = url_for('quotes.list_quotes')
        return response
    return redirect(url_for('quotes.list_quotes'))


@quotes_bp.route('/<quote_id>/pdf')
@require_login
def download_pdf(quote_id: str) -> Response:
    """Download one quote as PDF (vector or raster, per QUOTE_PDF_MODE)."""
    document = as_read_only(_document_for(get_session(), quote_id))
    config = current_app.config
    try:
        result = export_quote_pdf(
            document,
            datetime.now(),
            mode=config.get('QUOTE_PDF_MODE', 'vector'),
            scale=config.get('PDF_RASTER_SCALE', 2.0),
            page_height_mm=config.get('PDF_PAGE_HEIGHT_MM', 297),
            font_path=config.get('PDF_FONT_PATH'),
        )
    except ExportError as e:
        record_export('pdf', ok=False)
        current_app.logger.error(f"[EXPORT] PDF export failed for quote={quote_id}: {e.message}")
        flash(e.message, 'danger')
        return redirect(url_for('quotes.view_quote', quote_id=quote_id))

    record_export('pdf')
    return send_file(
        BytesIO(result.content),
        mimetype=result.mimetype,
        as_attachment=True,
        download_name=result.filename,
    )


@quotes_bp.route('/<quote_id>/export.html')
@require_login
def download_html(quote_id: str) -> Response:
    """Download a self-contained HTML copy of the quote."""
    document = _document_for(get_session(), quote_id, read_only=True, with_actions=False)
    html = render_quote_html(document)
    filename = build_export_filename(QUOTE_LABEL, 'html', datetime.now(), document.quote_number)
    record_export('html')
    return send_file(
        BytesIO(html.encode('utf-8')),
        mimetype='text/html',
        as_attachment=True,
        download_name=filename,
    )


@quotes_bp.route('/export/list.pdf')
@require_login
def download_list_pdf() -> Response:
    """PDF summary of the (filtered) quote list."""
    status = request.args.get('status', '').strip() or None
    search = request.args.get('q', '').strip() or None
    quotes = quote_service.list_quote_aggregates(get_session(), g.user_id, status, search)
    try:
        result = export_quote_list_pdf(quotes, datetime.now())
    except ExportError as e:
        record_export('pdf_list', ok=False)
        flash(e.message, 'danger')
        return redirect(url_for('quotes.list_quotes'))

    record_export('pdf_list')
    return send_file(
        BytesIO(result.content),
        mimetype=result.mimetype,
        as_attachment=True,
        download_name=result.filename,
    )


@quotes_bp.route('/<quote_id>/shares', methods=['POST'])
@require_login
def create_share(quote_id: str) -> Response:
    share = share_service.create_share(
        get_session(), g.user_id, quote_id,
        expires_in_days=current_app.config.get('SHARE_EXPIRES_DAYS'),
    )
    share_url = url_for('public.view_share', share_id=share.share_id, _external=True)
    flash(f'分享連結已建立：{share_url}', 'success')
    return redirect(url_for('quotes.view_quote', quote_id=quote_id))


@quotes_bp.route('/shares/<share_id>/deactivate', methods=['POST'])
@require_login
def deactivate_share(share_id: str) -> Response:
    share = share_service.deactivate_share(get_session(), g.user_id, share_id)
    flash('分享連結已停用', 'success')
    return redirect(url_for('quotes.view_quote', quote_id=share.quote_id))
