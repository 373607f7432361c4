"""
Public share pages: a quote opened through its share token, read-only and
without login.
"""
from datetime import datetime
from io import BytesIO

from flask import Blueprint, Response, render_template, send_file, url_for

from app.blueprints.metrics import record_export
from app.database import get_session
from app.services.document_service import Action, build_quote_document, render_quote_html
from app.services.export_service import QUOTE_LABEL, build_export_filename
from app.services.settings_service import load_bank_settings, load_company_settings
from app.services.share_service import resolve_share

public_bp = Blueprint('public', __name__, url_prefix='/share')


def _shared_document(share_id: str, with_actions: bool = True):
    session = get_session()
    aggregate, owner_id = resolve_share(session, share_id)
    actions = None
    if with_actions:
        actions = [
            Action('列印', '#', method='print', edit=False),
            Action('下載HTML', url_for('public.export_html', share_id=share_id), edit=False),
        ]
    # Branding belongs to the quote's owner, not to whoever opens the link
    return build_quote_document(
        aggregate,
        load_company_settings(session, owner_id),
        load_bank_settings(session, owner_id),
        read_only=True,
        actions=actions,
    )


@public_bp.route('/<share_id>')
def view_share(share_id: str) -> str:
    document = _shared_document(share_id)
    return render_template('public/view.html', document=document)


@public_bp.route('/<share_id>/export.html')
def export_html(share_id: str) -> Response:
    document = _shared_document(share_id, with_actions=False)
    html = render_quote_html(document)
    record_export('html')
    return send_file(
        BytesIO(html.encode('utf-8')),
        mimetype='text/html',
        as_attachment=True,
        download_name=build_export_filename(QUOTE_LABEL, 'html', datetime.now(), document.quote_number),
    )
