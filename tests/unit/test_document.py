"""
Unit tests for the quote document tree and its HTML rendering.
"""
from datetime import date, datetime
from decimal import Decimal

from app.services.document_service import (
    Action, ActionsSection, as_read_only, build_quote_document, render_quote_html
)
from app.services.quote_aggregate import build_quote_aggregate
from app.services.settings_service import BankSettings, CompanySettings

PIXEL = ('data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk'
         '+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg==')


def _aggregate(customer=True, bank=True, items=None, notes='付款條件：月結30天'):
    if items is None:
        items = [
            {'product_name': '主機代管', 'quantity': '1', 'unit': '月', 'unit_price': '50', 'sort_order': 1},
            {'product_name': '網站設計', 'description': '＊交付：原始碼', 'quantity': '2', 'unit': '式',
             'unit_price': '100', 'sort_order': 0},
        ]
    return build_quote_aggregate(
        {
            'id': 'q-1', 'quote_number': 'Q202601120001', 'status': 'sent',
            'quote_date': date(2026, 1, 12), 'valid_until': date(2026, 2, 11),
            'contact_person': '王小明', 'notes': notes, 'tax_rate': Decimal('5'),
        },
        customer={'id': 'c-1', 'company_name': '台北科技', 'phone': '02-1234-5678'} if customer else None,
        staff={'id': 's-1', 'name': '陳業務', 'title': '經理'},
        bank={'id': 'b-1', 'bank_name': '台灣銀行', 'account_name': '測試公司', 'account_number': '012-345'} if bank else None,
        items=items,
    )


COMPANY = CompanySettings(company_name='測試公司', phone='02-0000-0000')
ACTIONS = [
    Action('編輯', '/quotes/q-1/edit'),
    Action('列印', '/quotes/q-1/print', edit=False),
]


class TestBuildQuoteDocument:

    def test_section_order(self):
        document = build_quote_document(_aggregate(), COMPANY, generated_at=datetime(2026, 1, 12, 10, 0))
        assert [s.key for s in document.sections] == [
            'header', 'meta', 'items', 'totals', 'bank', 'notes', 'footer'
        ]
        assert document.title == '報價單 - Q202601120001'

    def test_items_sorted_and_formatted(self):
        document = build_quote_document(_aggregate(), COMPANY)
        rows = document.section('items').rows
        assert [r.product_name for r in rows] == ['網站設計', '主機代管']
        assert rows[0].amount == 'NT$ 200'
        assert [r.text for r in rows[0].description if r.bold] == ['交付']

    def test_totals_section(self):
        totals = build_quote_document(_aggregate(), COMPANY).section('totals')
        assert totals.subtotal == 'NT$ 250'
        assert totals.tax_label == '稅額 (5%)'
        assert totals.tax_amount == 'NT$ 12.5'
        assert totals.total == 'NT$ 262.5'

    def test_unknown_customer_placeholder(self):
        document = build_quote_document(_aggregate(customer=False), COMPANY)
        meta = document.section('meta')
        assert not meta.customer_resolved
        assert meta.customer_fields[0].value == '未知客戶'
        assert document.section('items').rows

    def test_bank_and_notes_only_when_present(self):
        document = build_quote_document(_aggregate(bank=False, notes=''), COMPANY)
        assert document.section('bank') is None
        assert document.section('notes') is None

    def test_empty_items(self):
        document = build_quote_document(_aggregate(items=[]), COMPANY)
        assert document.section('items').rows == []
        assert document.section('totals').is_empty

    def test_image_placeholders_and_uploads(self):
        document = build_quote_document(
            _aggregate(), COMPANY, BankSettings(bankbook_image=PIXEL),
            upload_urls={'logo': '/settings/company', 'stamp': '/settings/company'},
        )
        logo = document.section('header').logo
        assert not logo.has_image
        assert logo.placeholder == '公司Logo'
        assert logo.upload_url == '/settings/company'
        assert document.section('bank').bankbook.has_image


class TestReadOnlyMode:

    def test_read_only_drops_edit_affordances(self):
        document = build_quote_document(
            _aggregate(), COMPANY, read_only=True, actions=ACTIONS,
            upload_urls={'logo': '/settings/company'},
        )
        actions = document.section('actions')
        assert isinstance(actions, ActionsSection)
        assert [a.label for a in actions.actions] == ['列印']
        assert document.section('header').logo.upload_url is None

    def test_as_read_only_keeps_content(self):
        editable = build_quote_document(_aggregate(), COMPANY, actions=ACTIONS,
                                        upload_urls={'stamp': '/settings/company'})
        read_only = as_read_only(editable)

        assert read_only.read_only
        assert read_only.section('actions') is None
        assert read_only.section('totals').stamp.upload_url is None
        assert read_only.section('totals').total == editable.section('totals').total
        # The original document is untouched
        assert editable.section('actions') is not None
        assert editable.section('totals').stamp.upload_url == '/settings/company'


class TestRenderHtml:

    def test_self_contained_export(self, app):
        company = CompanySettings(company_name='測試公司', logo=PIXEL)
        document = build_quote_document(_aggregate(), company, read_only=True)
        with app.test_request_context():
            html = render_quote_html(document)

        assert '<style>' in html
        assert 'Q202601120001' in html
        assert 'NT$ 262.5' in html
        assert '<strong>交付</strong>' in html
        assert 'src="data:image/png;base64,' in html
        assert 'http://' not in html and 'https://' not in html
        assert '點擊上傳' not in html
