"""
Unit tests for the quote aggregate builder.
"""
from datetime import date
from decimal import Decimal

from app.services.quote_aggregate import (
    UNKNOWN_CUSTOMER_LABEL, Unresolved, build_quote_aggregate, is_resolved, sort_items
)


def _quote(**overrides):
    quote = {
        'id': 'q-1',
        'user_id': 'u-1',
        'quote_number': 'Q202601120001',
        'status': 'draft',
        'quote_date': date(2026, 1, 12),
        'valid_until': date(2026, 2, 11),
        'contact_person': '王小明',
        'notes': None,
        'tax_rate': Decimal('5'),
        'customer_id': 'c-1',
        'staff_id': 's-1',
        'bank_id': 'b-1',
    }
    quote.update(overrides)
    return quote


def _item(name, sort_order, quantity='1', unit_price='10'):
    return {
        'id': f'item-{name}',
        'product_name': name,
        'quantity': quantity,
        'unit': '個',
        'unit_price': unit_price,
        'sort_order': sort_order,
    }


class TestSortItems:

    def test_items_ordered_by_sort_order(self):
        items = [_item('c', 2), _item('a', 0), _item('b', 1)]
        assert [i.product_name for i in sort_items(items)] == ['a', 'b', 'c']

    def test_ties_keep_fetch_order(self):
        items = [_item('first', 1), _item('second', 1), _item('zero', 0)]
        assert [i.product_name for i in sort_items(items)] == ['zero', 'first', 'second']


class TestBuildAggregate:

    def test_resolved_relations(self):
        aggregate = build_quote_aggregate(
            _quote(),
            customer={'id': 'c-1', 'company_name': '台北科技'},
            staff={'id': 's-1', 'name': '陳業務'},
            bank={'id': 'b-1', 'bank_name': '台灣銀行', 'account_name': '公司', 'account_number': '123'},
            items=[_item('a', 0, '2', '100'), _item('b', 1, '1', '50')],
        )
        assert aggregate.customer_label == '台北科技'
        assert aggregate.staff.label == '陳業務'
        assert is_resolved(aggregate.bank)
        assert aggregate.totals.total == Decimal('262.5')
        assert aggregate.owner_id == 'u-1'

    def test_missing_customer_degrades_to_placeholder(self):
        aggregate = build_quote_aggregate(_quote(), customer=None, items=[_item('a', 0)])

        assert isinstance(aggregate.customer, Unresolved)
        assert not aggregate.customer
        assert aggregate.customer_label == UNKNOWN_CUSTOMER_LABEL
        assert aggregate.customer_id == 'c-1'

    def test_missing_staff_and_bank_do_not_raise(self):
        aggregate = build_quote_aggregate(_quote(), staff=None, bank=None)
        assert not is_resolved(aggregate.staff)
        assert not is_resolved(aggregate.bank)
        assert not aggregate.has_items
        assert aggregate.totals.is_empty

    def test_item_amount_is_recomputed(self):
        stale = dict(_item('a', 0, '3', '7'), amount='999')
        aggregate = build_quote_aggregate(_quote(), items=[stale])
        assert aggregate.items[0].amount == Decimal('21')
