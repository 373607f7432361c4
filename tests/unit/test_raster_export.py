"""
Unit tests for raster export: pagination math, hidden-node handling and
the Pillow document surface.
"""
import re
from datetime import date, datetime
from decimal import Decimal

import pytest
from PIL import Image, ImageDraw

from app.exceptions import ExportError
from app.services import raster_export
from app.services.document_service import Action, DocumentSection, build_quote_document
from app.services.quote_aggregate import build_quote_aggregate
from app.services.raster_export import (
    DocumentSurface, _load_fonts, decode_data_uri, export_surface_to_pdf, hidden_for_export, page_count,
    paginate, resolve_cjk_font
)
from app.services.settings_service import CompanySettings

PIXEL = ('data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk'
         '+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg==')


class FakeSurface:
    """Surface returning a fixed bitmap and recording what was hidden during capture."""

    def __init__(self, size=(210, 594), error=None, nodes=None):
        self.size = size
        self.error = error
        self.nodes = nodes if nodes is not None else [
            DocumentSection(key='actions', export_excluded=True),
            DocumentSection(key='toolbar', export_excluded=True, hidden=True),
        ]
        self.hidden_during_capture = None

    def export_nodes(self):
        return self.nodes

    def capture(self, scale):
        self.hidden_during_capture = [n.hidden for n in self.nodes]
        if self.error:
            raise self.error
        return Image.new('RGB', self.size, 'white')


class TestPagination:

    def test_page_count_is_ceiling(self):
        assert page_count(297, 297) == 1
        assert page_count(298, 297) == 2
        assert page_count(600, 297) == 3

    @pytest.mark.parametrize('image_height,page_height', [(0, 297), (100, 0), (-1, 297)])
    def test_page_count_rejects_non_positive(self, image_height, page_height):
        with pytest.raises(ValueError):
            page_count(image_height, page_height)

    def test_slices_tile_the_image(self):
        slices = paginate(700, 297)
        assert [s.index for s in slices] == [0, 1, 2]
        assert [s.offset for s in slices] == [0, 297, 594]
        assert slices[-1].visible_height == 106
        assert sum(s.visible_height for s in slices) == 700

    def test_single_short_page(self):
        slices = paginate(120, 297)
        assert len(slices) == 1
        assert slices[0].visible_height == 120


class TestHiddenForExport:

    def test_hides_then_restores_previous_state(self):
        surface = FakeSurface()
        with hidden_for_export(surface):
            assert all(n.hidden for n in surface.nodes)
        assert [n.hidden for n in surface.nodes] == [False, True]

    def test_restores_when_body_raises(self):
        surface = FakeSurface()
        with pytest.raises(RuntimeError):
            with hidden_for_export(surface):
                raise RuntimeError('capture failed')
        assert [n.hidden for n in surface.nodes] == [False, True]


class TestExportSurfaceToPdf:

    def test_two_a4_pages(self):
        surface = FakeSurface(size=(210, 594))
        result = export_surface_to_pdf(surface, '報價單_Q1_2026-01-12.pdf', page_height_mm=297)

        assert result.page_count == 2
        assert result.filename == '報價單_Q1_2026-01-12.pdf'
        assert result.mimetype == 'application/pdf'
        assert result.content.startswith(b'%PDF')
        assert len(re.findall(rb'/Type /Page\b', result.content)) == 2

    def test_excluded_nodes_hidden_only_during_capture(self):
        surface = FakeSurface()
        export_surface_to_pdf(surface, 'x.pdf')
        assert surface.hidden_during_capture == [True, True]
        assert [n.hidden for n in surface.nodes] == [False, True]

    def test_capture_failure_raises_export_error_and_restores(self):
        surface = FakeSurface(error=OSError('no display'))
        with pytest.raises(ExportError):
            export_surface_to_pdf(surface, 'x.pdf')
        assert [n.hidden for n in surface.nodes] == [False, True]

    def test_custom_page_height(self):
        result = export_surface_to_pdf(FakeSurface(size=(210, 594)), 'x.pdf', page_height_mm=100)
        assert result.page_count == 6


def _document(item_count=2, with_actions=True):
    items = [
        {'product_name': f'項目{i}', 'description': '＊規格：標準\n第二行', 'quantity': '1',
         'unit': '式', 'unit_price': '100', 'sort_order': i}
        for i in range(item_count)
    ]
    aggregate = build_quote_aggregate(
        {'id': 'q-1', 'quote_number': 'Q202601120001', 'status': 'draft',
         'quote_date': date(2026, 1, 12), 'valid_until': date(2026, 2, 11),
         'contact_person': '王小明', 'notes': '備註內容', 'tax_rate': Decimal('5')},
        customer={'id': 'c-1', 'company_name': '台北科技'},
        staff={'id': 's-1', 'name': '陳業務'},
        bank={'id': 'b-1', 'bank_name': '台灣銀行', 'account_number': '012-345'},
        items=items,
    )
    actions = [Action('編輯', '/quotes/q-1/edit'), Action('列印', '#', method='print', edit=False)]
    return build_quote_document(
        aggregate,
        CompanySettings(company_name='測試公司', logo=PIXEL),
        actions=actions if with_actions else None,
        generated_at=datetime(2026, 1, 12, 9, 30),
    )


class TestDocumentSurface:

    def test_export_nodes_are_the_toolbar(self):
        surface = DocumentSurface(_document())
        assert [n.key for n in surface.export_nodes()] == ['actions']

    def test_capture_scales_width(self, cjk_font):
        image = DocumentSurface(_document(with_actions=False), font_path=cjk_font).capture(1.0)
        assert image.size[0] == 794
        assert image.size[1] > 0
        assert DocumentSurface(_document(with_actions=False), font_path=cjk_font).capture(2.0).size[0] == 1588

    def test_long_document_spans_pages(self, cjk_font):
        document = _document(item_count=60)
        result = export_surface_to_pdf(DocumentSurface(document, font_path=cjk_font), 'x.pdf', scale=1.0)
        assert result.page_count >= 2
        assert document.section('actions').hidden is False


class TestCjkFont:
    """Raster text needs a font with CJK glyphs."""

    def test_configured_font_must_exist(self):
        with pytest.raises(ExportError):
            resolve_cjk_font('/nonexistent/NotoSansCJK-Regular.ttc')

    def test_first_installed_candidate_wins(self, tmp_path):
        installed = tmp_path / 'wqy-microhei.ttc'
        installed.write_bytes(b'')
        candidates = (str(tmp_path / 'missing.ttc'), str(installed))
        assert resolve_cjk_font(None, candidates) == str(installed)

    def test_no_installed_font(self):
        with pytest.raises(ExportError) as exc:
            resolve_cjk_font(None, ())
        assert 'PDF_FONT_PATH' in exc.value.message

    def test_export_without_font_fails_and_restores(self, monkeypatch):
        monkeypatch.setattr(raster_export, 'CJK_FONT_CANDIDATES', ())
        document = _document()

        with pytest.raises(ExportError):
            export_surface_to_pdf(DocumentSurface(document), 'x.pdf', scale=1.0)
        assert document.section('actions').hidden is False

    def test_chinese_glyphs_are_distinct(self, cjk_font):
        font = _load_fonts(1.0, cjk_font)['body']
        bitmaps = set()
        for char in '報價客':
            image = Image.new('L', (32, 32), 0)
            ImageDraw.Draw(image).text((2, 2), char, font=font, fill=255)
            bitmaps.add(image.tobytes())
        assert len(bitmaps) == 3


class TestDecodeDataUri:

    def test_png_pixel(self):
        img = decode_data_uri(PIXEL)
        assert img.size == (1, 1)

    @pytest.mark.parametrize('src', ['', 'https://example.com/logo.png', 'data:image/png;base64,!!!notbase64'])
    def test_unusable_sources(self, src):
        assert decode_data_uri(src) is None
