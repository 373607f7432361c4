"""Products blueprint (產品管理) and the product lookup used by the quote form."""
from typing import Union

from flask import Blueprint, Response, flash, g, jsonify, redirect, render_template, request, url_for

from app.database import get_session
from app.middleware import require_login
from app.models import Product
from app.services import catalog_service
from app.services.quote_validation import validate_product_form
from app.utils.formatters import num_tw

products_bp = Blueprint('products', __name__, url_prefix='/products')

LABEL = '產品'

FIELDS = [
    {'name': 'name', 'label': '產品名稱', 'type': 'text', 'required': True},
    {'name': 'description', 'label': '說明', 'type': 'textarea',
     'help': '以「＊標題：」開頭的文字會以粗體顯示'},
    {'name': 'unit', 'label': '單位', 'type': 'text', 'required': True, 'default': '個'},
    {'name': 'default_price', 'label': '預設單價', 'type': 'number', 'required': True, 'default': '0'},
]

COLUMNS = [('name', '產品名稱'), ('description', '說明'), ('unit', '單位'), ('default_price', '預設單價')]


def _render_list(entities, search_query):
    template = 'catalog/_table.html' if request.headers.get('HX-Request') == 'true' else 'catalog/list.html'
    return render_template(template, entities=entities, columns=COLUMNS, bp='products',
                           title='產品管理', label=LABEL, search_query=search_query,
                           money_columns=('default_price',), rich_columns=('description',))


def _render_form(entity, form, errors, status=200):
    return render_template('catalog/form.html', entity=entity, fields=FIELDS, form=form, errors=errors,
                           bp='products', label=LABEL), status


@products_bp.route('/')
@require_login
def index() -> str:
    search_query = request.args.get('q', '').strip()
    products = catalog_service.list_entities(
        get_session(), Product, g.user_id, search_query,
        search_fields=('name', 'description'),
        order_by=Product.name,
    )
    return _render_list(products, search_query)


@products_bp.route('/options.json')
@require_login
def options():
    """Products for the quote form's product picker."""
    products = catalog_service.list_entities(get_session(), Product, g.user_id, order_by=Product.name)
    return jsonify({'results': [
        {
            'id': p.id,
            'name': p.name,
            'description': p.description or '',
            'unit': p.unit,
            'default_price': num_tw(p.default_price),
        }
        for p in products
    ]})


@products_bp.route('/new', methods=['GET'])
@require_login
def new():
    return _render_form(None, {}, {})


@products_bp.route('/new', methods=['POST'])
@require_login
def create() -> Union[str, Response]:
    values, errors = validate_product_form(request.form)
    if errors:
        return _render_form(None, request.form, errors, 400)

    product = catalog_service.create_entity(get_session(), Product, g.user_id, values, LABEL)
    flash(f'產品「{product.name}」已新增', 'success')
    return redirect(url_for('products.index'))


@products_bp.route('/<entity_id>/edit', methods=['GET'])
@require_login
def edit(entity_id: str):
    product = catalog_service.get_entity(get_session(), Product, g.user_id, entity_id, LABEL)
    return _render_form(product, {}, {})


@products_bp.route('/<entity_id>/edit', methods=['POST'])
@require_login
def update(entity_id: str) -> Union[str, Response]:
    session = get_session()
    product = catalog_service.get_entity(session, Product, g.user_id, entity_id, LABEL)

    values, errors = validate_product_form(request.form)
    if errors:
        return _render_form(product, request.form, errors, 400)

    catalog_service.update_entity(session, product, values, LABEL)
    flash(f'產品「{product.name}」已更新', 'success')
    return redirect(url_for('products.index'))


@products_bp.route('/<entity_id>/delete', methods=['POST'])
@require_login
def delete(entity_id: str) -> Response:
    # Quote items keep their copied snapshot; only the link is cleared
    catalog_service.delete_entity(get_session(), Product, g.user_id, entity_id, LABEL)
    flash('產品已刪除', 'success')
    return redirect(url_for('products.index'))
