"""
Integration tests for the quote workflow: form, live totals, document view,
status, delete and owner isolation.
"""
from decimal import Decimal

from app.models import Quote, QuoteItem


def _quote_count(session):
    return session.query(Quote).count()


class TestQuoteList:
    """Quote list with status and text filters."""

    def test_list_shows_owned_quotes(self, authenticated_client, quote):
        response = authenticated_client.get('/quotes/')

        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert 'Q202601120001' in body
        assert '台北科技股份有限公司' in body

    def test_htmx_returns_table_fragment(self, authenticated_client, quote):
        response = authenticated_client.get('/quotes/?q=Q2026', headers={'HX-Request': 'true'})

        body = response.get_data(as_text=True)
        assert 'Q202601120001' in body
        assert '<html' not in body

    def test_status_filter(self, authenticated_client, quote):
        response = authenticated_client.get('/quotes/?status=accepted', headers={'HX-Request': 'true'})
        assert 'Q202601120001' not in response.get_data(as_text=True)

    def test_other_users_quotes_hidden(self, client, other_user, quote):
        with client.session_transaction() as sess:
            sess['user_id'] = other_user.id

        response = client.get('/quotes/')
        assert 'Q202601120001' not in response.get_data(as_text=True)


class TestQuoteForm:
    """Create and edit through the HTML form."""

    def test_new_form(self, authenticated_client, customer, staff, bank, product):
        response = authenticated_client.get('/quotes/new')

        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert '台北科技股份有限公司' in body
        assert '客製化外殼' in body
        assert 'items[0][product_name]' in body

    def test_create_quote(self, authenticated_client, session, form_for):
        response = authenticated_client.post('/quotes/new', data=form_for())

        assert response.status_code == 302
        quote = session.query(Quote).one()
        assert response.location.endswith(f'/quotes/{quote.id}')
        assert quote.total == Decimal('262.5')
        assert quote.quote_number.startswith('Q')
        assert len(quote.quote_number) == 13
        assert session.query(QuoteItem).filter(QuoteItem.quote_id == quote.id).count() == 2

    def test_create_without_items(self, authenticated_client, session, form_for):
        response = authenticated_client.post('/quotes/new', data=form_for(items=[]))

        assert response.status_code == 400
        assert '至少需要一個項目' in response.get_data(as_text=True)
        assert _quote_count(session) == 0

    def test_create_shows_row_errors(self, authenticated_client, session, form_for):
        response = authenticated_client.post('/quotes/new', data=form_for(items=[('', '0', '100')]))

        assert response.status_code == 400
        body = response.get_data(as_text=True)
        assert '請輸入產品名稱' in body
        assert '數量必須大於0' in body
        assert _quote_count(session) == 0

    def test_create_with_foreign_customer(self, client, session, other_user, form_for):
        with client.session_transaction() as sess:
            sess['user_id'] = other_user.id

        response = client.post('/quotes/new', data=form_for())

        assert response.status_code == 400
        assert _quote_count(session) == 0

    def test_edit_form_prefilled(self, authenticated_client, quote):
        response = authenticated_client.get(f'/quotes/{quote.id}/edit')

        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert '網站設計' in body
        assert '主機代管' in body
        assert 'NT$ 262.5' in body

    def test_update_quote(self, authenticated_client, session, quote, form_for):
        data = form_for(items=[('顧問服務', '3', '1,000')], tax_rate='0', status='sent')
        response = authenticated_client.post(f'/quotes/{quote.id}/edit', data=data)

        assert response.status_code == 302
        updated = session.query(Quote).filter(Quote.id == quote.id).one()
        assert updated.total == Decimal('3000')
        assert updated.status == 'sent'
        assert updated.quote_number == 'Q202601120001'
        items = session.query(QuoteItem).filter(QuoteItem.quote_id == quote.id).all()
        assert [i.product_name for i in items] == ['顧問服務']


class TestLiveTotals:
    """HTMX preview and product picker."""

    def test_preview_totals(self, authenticated_client, form_for):
        response = authenticated_client.post('/quotes/preview-totals', data=form_for(),
                                             headers={'HX-Request': 'true'})

        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert 'NT$ 250' in body
        assert 'NT$ 12.5' in body
        assert 'NT$ 262.5' in body
        assert 'id="item-amount-1"' in body

    def test_preview_with_half_typed_row(self, authenticated_client, form_for):
        data = form_for(items=[('網站設計', '2', '100'), ('', '', '')])
        response = authenticated_client.post('/quotes/preview-totals', data=data)

        assert response.status_code == 200
        assert 'NT$ 210' in response.get_data(as_text=True)

    def test_preview_matches_saved_and_exported_totals(self, authenticated_client, session, form_for):
        data = form_for(items=[('網站設計', '1.25', '99.99'), ('主機代管', '3', '0.07')], tax_rate='5.25')
        shown = ('NT$ 125.198', 'NT$ 6.573', 'NT$ 131.77')

        preview = authenticated_client.post('/quotes/preview-totals', data=data,
                                            headers={'HX-Request': 'true'}).get_data(as_text=True)
        assert all(text in preview for text in shown)

        assert authenticated_client.post('/quotes/new', data=data).status_code == 302
        saved = session.query(Quote).one()
        assert saved.subtotal == Decimal('125.1975')
        assert saved.tax_amount == Decimal('6.57286875')
        assert saved.total == Decimal('131.77036875')

        for url in (f'/quotes/{saved.id}', f'/quotes/{saved.id}/export.html'):
            body = authenticated_client.get(url).get_data(as_text=True)
            assert all(text in body for text in shown)

    def test_sub_cent_input_is_rejected(self, authenticated_client, session, form_for):
        data = form_for(items=[('網站設計', '1.005', '99.999')], tax_rate='5.125')
        response = authenticated_client.post('/quotes/new', data=data)

        assert response.status_code == 400
        assert '最多只能輸入 2 位小數' in response.get_data(as_text=True)
        assert _quote_count(session) == 0

    def test_apply_product(self, authenticated_client, product):
        response = authenticated_client.post('/quotes/apply-product',
                                             json={'product_id': product.id, 'quantity': '1'})

        assert response.status_code == 200
        assert response.get_json() == {
            'product_id': product.id,
            'product_name': '客製化外殼',
            'description': '＊材質：鋁合金\n陽極處理',
            'unit': '件',
            'quantity': '1',
            'unit_price': '300',
            'amount': '300',
        }

    def test_apply_unknown_product(self, authenticated_client, product):
        response = authenticated_client.post('/quotes/apply-product', json={'product_id': 'nope'})
        assert response.status_code == 404


class TestQuoteDocument:
    """Document view, print and status."""

    def test_view_quote(self, authenticated_client, quote):
        response = authenticated_client.get(f'/quotes/{quote.id}')

        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert 'Q202601120001' in body
        assert '編輯' in body
        assert '付款方式' in body
        assert '台灣銀行' in body

    def test_print_is_read_only(self, authenticated_client, quote):
        response = authenticated_client.get(f'/quotes/{quote.id}/print')

        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert 'window.print()' in body
        assert 'Q202601120001' in body
        assert '建立分享連結' not in body

    def test_change_status(self, authenticated_client, session, quote):
        response = authenticated_client.post(f'/quotes/{quote.id}/status', data={'status': 'accepted'})

        assert response.status_code == 302
        assert session.query(Quote).filter(Quote.id == quote.id).one().status == 'accepted'

    def test_change_status_invalid(self, authenticated_client, session, quote):
        response = authenticated_client.post(f'/quotes/{quote.id}/status', data={'status': 'archived'},
                                             headers={'HX-Request': 'true'})

        assert response.status_code == 400
        assert session.query(Quote).filter(Quote.id == quote.id).one().status == 'draft'


class TestDeleteQuote:

    def test_delete(self, authenticated_client, session, quote):
        response = authenticated_client.post(f'/quotes/{quote.id}/delete')

        assert response.status_code == 302
        assert _quote_count(session) == 0

    def test_delete_htmx_redirects_client(self, authenticated_client, session, quote):
        response = authenticated_client.post(f'/quotes/{quote.id}/delete', headers={'HX-Request': 'true'})

        assert response.status_code == 200
        assert response.headers['HX-Redirect'].endswith('/quotes/')
        assert _quote_count(session) == 0


class TestOwnerIsolation:
    """Another user's quote behaves as if it did not exist."""

    def test_view_edit_delete_are_404(self, client, session, other_user, quote, form_for):
        with client.session_transaction() as sess:
            sess['user_id'] = other_user.id

        assert client.get(f'/quotes/{quote.id}').status_code == 404
        assert client.get(f'/quotes/{quote.id}/edit').status_code == 404
        assert client.post(f'/quotes/{quote.id}/edit', data=form_for()).status_code == 404
        assert client.get(f'/quotes/{quote.id}/pdf').status_code == 404
        assert client.post(f'/quotes/{quote.id}/delete').status_code == 404
        assert _quote_count(session) == 1
