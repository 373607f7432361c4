"""Staff blueprint (負責人管理)."""
from typing import Union

from flask import Blueprint, Response, flash, g, redirect, render_template, request, url_for

from app.database import get_session
from app.middleware import require_login
from app.models import Staff
from app.services import catalog_service
from app.services.quote_validation import validate_staff_form

staff_bp = Blueprint('staff', __name__, url_prefix='/staff')

LABEL = '負責人'

FIELDS = [
    {'name': 'name', 'label': '姓名', 'type': 'text', 'required': True},
    {'name': 'title', 'label': '職稱', 'type': 'text'},
    {'name': 'phone', 'label': '電話', 'type': 'text'},
    {'name': 'email', 'label': '電子郵件', 'type': 'email'},
]

COLUMNS = [('name', '姓名'), ('title', '職稱'), ('phone', '電話'), ('email', '電子郵件')]


def _render_form(entity, form, errors, status=200):
    return render_template('catalog/form.html', entity=entity, fields=FIELDS, form=form, errors=errors,
                           bp='staff', label=LABEL), status


@staff_bp.route('/')
@require_login
def index() -> str:
    search_query = request.args.get('q', '').strip()
    members = catalog_service.list_entities(
        get_session(), Staff, g.user_id, search_query,
        search_fields=('name', 'title', 'phone', 'email'),
        order_by=Staff.name,
    )
    template = 'catalog/_table.html' if request.headers.get('HX-Request') == 'true' else 'catalog/list.html'
    return render_template(template, entities=members, columns=COLUMNS, bp='staff',
                           title='負責人管理', label=LABEL, search_query=search_query)


@staff_bp.route('/new', methods=['GET'])
@require_login
def new():
    return _render_form(None, {}, {})


@staff_bp.route('/new', methods=['POST'])
@require_login
def create() -> Union[str, Response]:
    values, errors = validate_staff_form(request.form)
    if errors:
        return _render_form(None, request.form, errors, 400)

    values['title'] = values['title'] or ''
    member = catalog_service.create_entity(get_session(), Staff, g.user_id, values, LABEL)
    flash(f'負責人「{member.name}」已新增', 'success')
    return redirect(url_for('staff.index'))


@staff_bp.route('/<entity_id>/edit', methods=['GET'])
@require_login
def edit(entity_id: str):
    member = catalog_service.get_entity(get_session(), Staff, g.user_id, entity_id, LABEL)
    return _render_form(member, {}, {})


@staff_bp.route('/<entity_id>/edit', methods=['POST'])
@require_login
def update(entity_id: str) -> Union[str, Response]:
    session = get_session()
    member = catalog_service.get_entity(session, Staff, g.user_id, entity_id, LABEL)

    values, errors = validate_staff_form(request.form)
    if errors:
        return _render_form(member, request.form, errors, 400)

    values['title'] = values['title'] or ''
    catalog_service.update_entity(session, member, values, LABEL)
    flash(f'負責人「{member.name}」已更新', 'success')
    return redirect(url_for('staff.index'))


@staff_bp.route('/<entity_id>/delete', methods=['POST'])
@require_login
def delete(entity_id: str) -> Response:
    catalog_service.delete_entity(get_session(), Staff, g.user_id, entity_id, LABEL)
    flash('負責人已刪除', 'success')
    return redirect(url_for('staff.index'))
