"""Bank accounts blueprint (銀行帳戶管理)."""
from typing import Union

from flask import Blueprint, Response, flash, g, redirect, render_template, request, url_for

from app.database import get_session
from app.middleware import require_login
from app.models import Bank
from app.services import catalog_service
from app.services.quote_validation import validate_bank_form

banks_bp = Blueprint('banks', __name__, url_prefix='/banks')

LABEL = '銀行帳戶'

FIELDS = [
    {'name': 'bank_name', 'label': '銀行名稱', 'type': 'text', 'required': True},
    {'name': 'branch_name', 'label': '分行', 'type': 'text'},
    {'name': 'account_name', 'label': '戶名', 'type': 'text', 'required': True},
    {'name': 'account_number', 'label': '帳戶號碼', 'type': 'text', 'required': True},
    {'name': 'swift_code', 'label': 'SWIFT', 'type': 'text'},
    {'name': 'notes', 'label': '備註', 'type': 'textarea'},
]

COLUMNS = [('bank_name', '銀行名稱'), ('branch_name', '分行'), ('account_name', '戶名'), ('account_number', '帳戶號碼')]


def _render_form(entity, form, errors, status=200):
    return render_template('catalog/form.html', entity=entity, fields=FIELDS, form=form, errors=errors,
                           bp='banks', label=LABEL), status


@banks_bp.route('/')
@require_login
def index() -> str:
    search_query = request.args.get('q', '').strip()
    banks = catalog_service.list_entities(
        get_session(), Bank, g.user_id, search_query,
        search_fields=('bank_name', 'account_name', 'account_number'),
        order_by=Bank.bank_name,
    )
    template = 'catalog/_table.html' if request.headers.get('HX-Request') == 'true' else 'catalog/list.html'
    return render_template(template, entities=banks, columns=COLUMNS, bp='banks',
                           title='銀行帳戶管理', label=LABEL, search_query=search_query)


@banks_bp.route('/new', methods=['GET'])
@require_login
def new():
    return _render_form(None, {}, {})


@banks_bp.route('/new', methods=['POST'])
@require_login
def create() -> Union[str, Response]:
    values, errors = validate_bank_form(request.form)
    if errors:
        return _render_form(None, request.form, errors, 400)

    bank = catalog_service.create_entity(get_session(), Bank, g.user_id, values, LABEL)
    flash(f'銀行帳戶「{bank.bank_name}」已新增', 'success')
    return redirect(url_for('banks.index'))


@banks_bp.route('/<entity_id>/edit', methods=['GET'])
@require_login
def edit(entity_id: str):
    bank = catalog_service.get_entity(get_session(), Bank, g.user_id, entity_id, LABEL)
    return _render_form(bank, {}, {})


@banks_bp.route('/<entity_id>/edit', methods=['POST'])
@require_login
def update(entity_id: str) -> Union[str, Response]:
    session = get_session()
    bank = catalog_service.get_entity(session, Bank, g.user_id, entity_id, LABEL)

    values, errors = validate_bank_form(request.form)
    if errors:
        return _render_form(bank, request.form, errors, 400)

    catalog_service.update_entity(session, bank, values, LABEL)
    flash(f'銀行帳戶「{bank.bank_name}」已更新', 'success')
    return redirect(url_for('banks.index'))


@banks_bp.route('/<entity_id>/delete', methods=['POST'])
@require_login
def delete(entity_id: str) -> Response:
    catalog_service.delete_entity(get_session(), Bank, g.user_id, entity_id, LABEL)
    flash('銀行帳戶已刪除', 'success')
    return redirect(url_for('banks.index'))
