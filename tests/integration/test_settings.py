"""
Integration tests for company profile and bank settings pages.
"""
from io import BytesIO

from PIL import Image

from app.services.settings_service import (
    CompanySettings, load_bank_settings, load_company_settings, save_company_settings
)


def _png(size=(60, 30)):
    buffer = BytesIO()
    Image.new('RGBA', size, (200, 0, 0, 255)).save(buffer, format='PNG')
    buffer.seek(0)
    return buffer


def _company_form(**overrides):
    data = {
        'company_name': '測試有限公司',
        'address': '台北市中山區',
        'phone': '02-2222-3333',
        'email': 'info@example.com',
        'website': 'https://example.com',
        'tax_id': '24681357',
    }
    data.update(overrides)
    return data


class TestCompanySettings:

    def test_settings_index_redirects(self, authenticated_client):
        assert authenticated_client.get('/settings/').location.endswith('/settings/company')

    def test_page_shows_defaults(self, authenticated_client):
        response = authenticated_client.get('/settings/company')

        assert response.status_code == 200
        assert '測試公司' in response.get_data(as_text=True)

    def test_save_with_logo_and_stamp(self, authenticated_client, session, user):
        data = _company_form(logo=(_png(), 'logo.png', 'image/png'), stamp=(_png(), 'stamp.png', 'image/png'))
        response = authenticated_client.post('/settings/company', data=data, content_type='multipart/form-data')

        assert response.status_code == 302
        settings = load_company_settings(session, user.id)
        assert settings.company_name == '測試有限公司'
        assert settings.logo.startswith('data:image/png;base64,')
        assert settings.stamp.startswith('data:image/png;base64,')

    def test_save_keeps_existing_images(self, authenticated_client, session, user):
        save_company_settings(session, user.id, CompanySettings(company_name='A', logo='data:image/png;base64,AAAA'))

        authenticated_client.post('/settings/company', data=_company_form())

        assert load_company_settings(session, user.id).logo == 'data:image/png;base64,AAAA'

    def test_remove_logo(self, authenticated_client, session, user):
        save_company_settings(session, user.id, CompanySettings(company_name='A', logo='data:image/png;base64,AAAA'))

        authenticated_client.post('/settings/company', data=_company_form(remove_logo='1'))

        assert load_company_settings(session, user.id).logo == ''

    def test_cleared_phone_is_not_refilled(self, app, authenticated_client, session, user, monkeypatch):
        monkeypatch.setitem(app.config, 'BUSINESS_PHONE', '02-8888-9999')

        authenticated_client.post('/settings/company', data=_company_form(phone=''))

        assert load_company_settings(session, user.id).phone == ''
        assert '02-8888-9999' not in authenticated_client.get('/settings/company').get_data(as_text=True)

    def test_company_name_required(self, authenticated_client, session, user):
        response = authenticated_client.post('/settings/company', data=_company_form(company_name=''))

        assert response.status_code == 400
        assert '請輸入公司名稱' in response.get_data(as_text=True)

    def test_rejects_non_image_upload(self, authenticated_client, session, user):
        data = _company_form(logo=(BytesIO(b'%PDF-1.4'), 'logo.pdf', 'application/pdf'))
        response = authenticated_client.post('/settings/company', data=data, content_type='multipart/form-data',
                                             headers={'HX-Request': 'true'})

        assert response.status_code == 400
        assert load_company_settings(session, user.id).logo == ''

    def test_logo_appears_on_quote(self, authenticated_client, session, user, quote):
        data = _company_form(logo=(_png(), 'logo.png', 'image/png'))
        authenticated_client.post('/settings/company', data=data, content_type='multipart/form-data')

        response = authenticated_client.get(f'/quotes/{quote.id}')
        assert 'data:image/png;base64,' in response.get_data(as_text=True)


class TestBankSettings:

    def test_bankbook_upload(self, authenticated_client, session, user):
        response = authenticated_client.post('/settings/bank', data={
            'bankbook_image': (_png((400, 200)), 'bankbook.png', 'image/png'),
        }, content_type='multipart/form-data')

        assert response.status_code == 302
        assert load_bank_settings(session, user.id).bankbook_image.startswith('data:image/png;base64,')

    def test_page_renders(self, authenticated_client):
        assert authenticated_client.get('/settings/bank').status_code == 200
