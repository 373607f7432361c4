"""Customers blueprint (客戶管理)."""
from typing import Union

from flask import Blueprint, Response, flash, g, redirect, render_template, request, url_for

from app.database import get_session
from app.middleware import require_login
from app.models import Customer
from app.services import catalog_service
from app.services.quote_validation import validate_customer_form

customers_bp = Blueprint('customers', __name__, url_prefix='/customers')

LABEL = '客戶'

FIELDS = [
    {'name': 'company_name', 'label': '公司名稱', 'type': 'text', 'required': True},
    {'name': 'contact_person', 'label': '聯絡人', 'type': 'text', 'required': True},
    {'name': 'phone', 'label': '電話', 'type': 'text'},
    {'name': 'email', 'label': '電子郵件', 'type': 'email'},
    {'name': 'address', 'label': '地址', 'type': 'text'},
    {'name': 'tax_id', 'label': '統一編號', 'type': 'text'},
    {'name': 'notes', 'label': '備註', 'type': 'textarea'},
]

COLUMNS = [('company_name', '公司名稱'), ('contact_person', '聯絡人'), ('phone', '電話'), ('email', '電子郵件')]


def _render_list(entities, search_query):
    template = 'catalog/_table.html' if request.headers.get('HX-Request') == 'true' else 'catalog/list.html'
    return render_template(template, entities=entities, columns=COLUMNS, bp='customers',
                           title='客戶管理', label=LABEL, search_query=search_query)


def _render_form(entity, form, errors, status=200):
    return render_template('catalog/form.html', entity=entity, fields=FIELDS, form=form, errors=errors,
                           bp='customers', label=LABEL), status


@customers_bp.route('/')
@require_login
def index() -> str:
    """List the user's customers."""
    search_query = request.args.get('q', '').strip()
    customers = catalog_service.list_entities(
        get_session(), Customer, g.user_id, search_query,
        search_fields=('company_name', 'contact_person', 'phone', 'email', 'tax_id'),
        order_by=Customer.company_name,
    )
    return _render_list(customers, search_query)


@customers_bp.route('/new', methods=['GET'])
@require_login
def new():
    return _render_form(None, {}, {})


@customers_bp.route('/new', methods=['POST'])
@require_login
def create() -> Union[str, Response]:
    values, errors = validate_customer_form(request.form)
    if errors:
        return _render_form(None, request.form, errors, 400)

    customer = catalog_service.create_entity(get_session(), Customer, g.user_id, values, LABEL)
    flash(f'客戶「{customer.company_name}」已新增', 'success')
    return redirect(url_for('customers.index'))


@customers_bp.route('/<entity_id>/edit', methods=['GET'])
@require_login
def edit(entity_id: str):
    customer = catalog_service.get_entity(get_session(), Customer, g.user_id, entity_id, LABEL)
    return _render_form(customer, {}, {})


@customers_bp.route('/<entity_id>/edit', methods=['POST'])
@require_login
def update(entity_id: str) -> Union[str, Response]:
    session = get_session()
    customer = catalog_service.get_entity(session, Customer, g.user_id, entity_id, LABEL)

    values, errors = validate_customer_form(request.form)
    if errors:
        return _render_form(customer, request.form, errors, 400)

    catalog_service.update_entity(session, customer, values, LABEL)
    flash(f'客戶「{customer.company_name}」已更新', 'success')
    return redirect(url_for('customers.index'))


@customers_bp.route('/<entity_id>/delete', methods=['POST'])
@require_login
def delete(entity_id: str) -> Response:
    """Delete a customer; refused while a quote references it."""
    catalog_service.delete_entity(get_session(), Customer, g.user_id, entity_id, LABEL)
    flash('客戶已刪除', 'success')
    return redirect(url_for('customers.index'))
