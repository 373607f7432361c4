"""
Unit tests for display formatting and number parsing.
"""
from datetime import date, datetime
from decimal import Decimal

import pytest

from app.utils.formatters import (
    date_tw, datetime_tw, format_currency, format_percent, format_quantity, num_tw
)
from app.utils.number_format import parse_decimal


class TestNumberFormatting:

    @pytest.mark.parametrize('value, expected', [
        (1500, '1,500'),
        (12.5, '12.5'),
        (Decimal('262.50'), '262.5'),
        (Decimal('1234567.891'), '1,234,567.891'),
        (Decimal('0.0005'), '0.001'),
        (0, '0'),
        (-1234.5, '-1,234.5'),
        (None, '-'),
    ])
    def test_num_tw(self, value, expected):
        assert num_tw(value) == expected

    def test_currency(self):
        assert format_currency(Decimal('262.5')) == 'NT$ 262.5'
        assert format_currency(50400) == 'NT$ 50,400'
        assert format_currency(None) == 'NT$ 0'

    def test_quantity_and_percent(self):
        assert format_quantity(Decimal('2.00')) == '2'
        assert format_quantity(Decimal('1.50')) == '1.5'
        assert format_percent(Decimal('5.00')) == '5%'


class TestDateFormatting:

    def test_date(self):
        assert date_tw(date(2026, 1, 12)) == '2026/01/12'
        assert date_tw(datetime(2026, 1, 12, 9, 30)) == '2026/01/12'
        assert date_tw('2026-01-12') == '2026/01/12'

    def test_invalid_and_missing(self):
        assert date_tw('not-a-date') == '無效日期'
        assert date_tw(None) == '-'

    def test_datetime(self):
        assert datetime_tw(datetime(2026, 1, 12, 15, 30)) == '2026/01/12 15:30:00'
        assert datetime_tw(None) == '-'


class TestParseDecimal:

    @pytest.mark.parametrize('raw, expected', [
        ('1,234.56', Decimal('1234.56')),
        ('1234.5', Decimal('1234.5')),
        ('-3', Decimal('-3')),
        (7, Decimal('7')),
    ])
    def test_valid(self, raw, expected):
        assert parse_decimal(raw) == expected

    @pytest.mark.parametrize('raw', ['', None, 'abc', '12,34', '1.2.3'])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_decimal(raw)
