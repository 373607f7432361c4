import os
import uuid
from datetime import date
from decimal import Decimal

import pytest

from app import create_app
from app.database import create_all, drop_all, get_session
from app.exceptions import ExportError
from app.models import AppUser, Bank, Customer, Product, Staff
from app.services import quote_service
from app.services.quote_validation import ItemDraft, QuoteDraft
from app.services.raster_export import resolve_cjk_font


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    return create_app('config.TestConfig')


@pytest.fixture(autouse=True)
def database(app):
    """Fresh schema for every test, inside an app context."""
    with app.app_context():
        get_session().remove()
        drop_all()
        create_all()
        yield
        get_session().remove()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Database session for testing."""
    return get_session()


def _make_user(session, name):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(email=f'{name}-{suffix}@example.com', full_name=name, active=True)
    user.set_password('Password123')
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def user(session):
    """Owner of the catalog fixtures below."""
    return _make_user(session, 'owner')


@pytest.fixture(scope='function')
def other_user(session):
    """Second account for isolation tests."""
    return _make_user(session, 'other')


@pytest.fixture(scope='function')
def customer(session, user):
    customer = Customer(
        user_id=user.id,
        company_name='台北科技股份有限公司',
        contact_person='王小明',
        phone='02-1234-5678',
        email='ming@example.com',
        address='台北市信義區信義路五段7號',
        tax_id='12345678',
    )
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture(scope='function')
def staff(session, user):
    member = Staff(user_id=user.id, name='陳業務', title='業務經理', phone='0912-345-678')
    session.add(member)
    session.commit()
    return member


@pytest.fixture(scope='function')
def bank(session, user):
    bank = Bank(
        user_id=user.id,
        bank_name='台灣銀行',
        branch_name='信義分行',
        account_name='測試公司',
        account_number='012-345-678901',
    )
    session.add(bank)
    session.commit()
    return bank


@pytest.fixture(scope='function')
def product(session, user):
    product = Product(
        user_id=user.id,
        name='客製化外殼',
        description='＊材質：鋁合金\n陽極處理',
        unit='件',
        default_price=Decimal('300'),
    )
    session.add(product)
    session.commit()
    return product


def _make_draft(customer, staff, bank, items=None, **overrides):
    """A valid draft; ``items`` is a list of (name, quantity, unit_price)."""
    if items is None:
        items = [('網站設計', '2', '100'), ('主機代管', '1', '50')]
    values = dict(
        customer_id=customer.id,
        contact_person='王小明',
        staff_id=staff.id,
        bank_id=bank.id,
        quote_date=date(2026, 1, 12),
        valid_until=date(2026, 2, 11),
        tax_rate=Decimal('5'),
        notes='付款方式：簽約後支付50%',
        items=[
            ItemDraft(
                product_id=None,
                product_name=name,
                description='',
                quantity=Decimal(quantity),
                unit='式',
                unit_price=Decimal(unit_price),
                sort_order=position,
            )
            for position, (name, quantity, unit_price) in enumerate(items)
        ],
    )
    values.update(overrides)
    return QuoteDraft(**values)


@pytest.fixture(scope='function')
def quote(session, user, customer, staff, bank):
    """Saved quote: 2 x 100 + 1 x 50 at 5% tax."""
    return quote_service.create_quote(session, user.id, _make_draft(customer, staff, bank),
                                      today=date(2026, 1, 12))


def _quote_form(customer, staff, bank, items=None, **overrides):
    """Form payload as the quote form posts it."""
    if items is None:
        items = [('網站設計', '2', '100'), ('主機代管', '1', '50')]
    data = {
        'customer_id': customer.id,
        'contact_person': '王小明',
        'staff_id': staff.id,
        'bank_id': bank.id,
        'quote_date': '2026-01-12',
        'valid_until': '2026-02-11',
        'tax_rate': '5',
        'status': 'draft',
        'notes': '',
    }
    for index, (name, quantity, unit_price) in enumerate(items):
        data[f'items[{index}][product_id]'] = ''
        data[f'items[{index}][product_name]'] = name
        data[f'items[{index}][description]'] = ''
        data[f'items[{index}][quantity]'] = quantity
        data[f'items[{index}][unit]'] = '式'
        data[f'items[{index}][unit_price]'] = unit_price
    data.update(overrides)
    return data


@pytest.fixture(scope='function')
def authenticated_client(client, user):
    """Client logged in as ``user``."""
    with client.session_transaction() as sess:
        sess['user_id'] = user.id
    return client


@pytest.fixture(scope='function')
def draft_for(customer, staff, bank):
    """Build drafts against the catalog fixtures."""
    def build(items=None, **overrides):
        return _make_draft(customer, staff, bank, items, **overrides)
    return build


@pytest.fixture(scope='function')
def form_for(customer, staff, bank):
    """Build quote form payloads against the catalog fixtures."""
    def build(items=None, **overrides):
        return _quote_form(customer, staff, bank, items, **overrides)
    return build


@pytest.fixture(scope='session')
def cjk_font():
    """Font file for raster rendering; skips where the host has no CJK font."""
    try:
        return resolve_cjk_font(os.getenv('PDF_FONT_PATH'))
    except ExportError:
        pytest.skip('no CJK font installed')
