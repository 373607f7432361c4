"""
Settings blueprint: company profile (公司資訊) and bank settings (銀行設定).
Uploaded images are stored as data URIs so exported documents never
depend on external files.
"""
from dataclasses import replace
from typing import Union

from flask import Blueprint, Response, current_app, flash, g, redirect, render_template, request, url_for

from app.database import get_session
from app.middleware import require_login
from app.services.settings_service import (
    image_to_data_uri,
    load_bank_settings,
    load_company_settings,
    save_bank_settings,
    save_company_settings,
)

settings_bp = Blueprint('settings', __name__, url_prefix='/settings')

COMPANY_FIELDS = [
    ('company_name', '公司名稱'),
    ('address', '地址'),
    ('phone', '電話'),
    ('email', '電子郵件'),
    ('website', '網站'),
    ('tax_id', '統一編號'),
]


def _uploaded_image(field: str, current: str) -> str:
    """New data URI from the upload in ``field``, '' when removal was requested, else ``current``."""
    if request.form.get(f'remove_{field}'):
        return ''
    upload = request.files.get(field)
    if not upload or not upload.filename:
        return current
    return image_to_data_uri(
        upload,
        max_size=current_app.config['MAX_UPLOAD_SIZE'],
        max_dimension=current_app.config['IMAGE_MAX_DIMENSION'],
        allowed_mime_types=current_app.config['ALLOWED_MIME_TYPES'],
    )


@settings_bp.route('/')
@require_login
def index() -> Response:
    return redirect(url_for('settings.company'))


@settings_bp.route('/company', methods=['GET'])
@require_login
def company() -> str:
    settings = load_company_settings(get_session(), g.user_id)
    return render_template('settings/company.html', settings=settings, fields=COMPANY_FIELDS)


@settings_bp.route('/company', methods=['POST'])
@require_login
def update_company() -> Union[str, Response]:
    """Save the company profile plus logo and quotation stamp."""
    session = get_session()
    current = load_company_settings(session, g.user_id)

    values = {name: request.form.get(name, '').strip() for name, _ in COMPANY_FIELDS}
    if not values['company_name']:
        flash('請輸入公司名稱', 'danger')
        return render_template('settings/company.html', settings=replace(current, **values),
                               fields=COMPANY_FIELDS), 400

    updated = replace(
        current,
        logo=_uploaded_image('logo', current.logo),
        stamp=_uploaded_image('stamp', current.stamp),
        **values,
    )
    save_company_settings(session, g.user_id, updated)
    current_app.logger.info(f"[SETTINGS] Company settings saved user={g.user_id}")
    flash('公司資訊已儲存', 'success')
    return redirect(url_for('settings.company'))


@settings_bp.route('/bank', methods=['GET'])
@require_login
def bank() -> str:
    settings = load_bank_settings(get_session(), g.user_id)
    return render_template('settings/bank.html', settings=settings)


@settings_bp.route('/bank', methods=['POST'])
@require_login
def update_bank() -> Response:
    session = get_session()
    current = load_bank_settings(session, g.user_id)
    updated = replace(current, bankbook_image=_uploaded_image('bankbook_image', current.bankbook_image))
    save_bank_settings(session, g.user_id, updated)
    flash('銀行設定已儲存', 'success')
    return redirect(url_for('settings.bank'))
