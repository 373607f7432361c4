"""
Rasterize-then-paginate PDF export.

A render surface is captured to one tall bitmap at A4 width, then laid
onto as many A4 pages as needed by drawing the same bitmap once per page,
shifted up by the page offset. Export-excluded nodes are hidden for the
capture and restored on every exit path.
"""
import base64
import logging
import math
import os
from contextlib import contextmanager
from dataclasses import dataclass
from io import BytesIO
from typing import Iterable, Iterator, List, Optional, Protocol, Sequence

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from app.exceptions import ExportError
from app.services.document_service import (
    ActionsSection, BankSection, DocumentSection, FooterSection, HeaderSection,
    ImageSlot, ItemsSection, MetaSection, NotesSection, QuoteDocument,
    TotalsSection
)
from app.utils.rich_text import TextRun

logger = logging.getLogger(__name__)

A4_WIDTH_MM = 210.0
A4_HEIGHT_MM = 297.0

# Surface width at scale 1 (A4 at 96 dpi)
BASE_WIDTH_PX = 794

# Installed CJK fonts tried when PDF_FONT_PATH is unset (Noto CJK, WenQuanYi,
# AR PL, macOS, Windows)
CJK_FONT_CANDIDATES = (
    '/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc',
    '/usr/share/fonts/noto-cjk/NotoSansCJK-Regular.ttc',
    '/usr/share/fonts/google-noto-cjk/NotoSansCJK-Regular.ttc',
    '/usr/share/fonts/truetype/wqy/wqy-microhei.ttc',
    '/usr/share/fonts/truetype/wqy/wqy-zenhei.ttc',
    '/usr/share/fonts/truetype/arphic/uming.ttc',
    '/System/Library/Fonts/PingFang.ttc',
    '/Library/Fonts/Arial Unicode.ttf',
    'C:/Windows/Fonts/msjh.ttc',
)


@dataclass(frozen=True)
class PageSlice:
    """One page of a paginated image: ``[offset, offset + visible_height)``."""
    index: int
    offset: float
    visible_height: float


@dataclass
class ExportResult:
    filename: str
    content: bytes
    page_count: int
    mimetype: str = 'application/pdf'


def page_count(image_height: float, page_height: float) -> int:
    """ceil(image_height / page_height)."""
    if page_height <= 0:
        raise ValueError('page_height must be positive')
    if image_height <= 0:
        raise ValueError('image_height must be positive')
    return int(math.ceil(image_height / page_height))


def paginate(image_height: float, page_height: float) -> List[PageSlice]:
    """
    Split an image of ``image_height`` into page-sized slices.

    The slices tile ``[0, image_height)`` exactly: page ``i`` starts at
    ``i * page_height`` and the last page only shows what is left.
    """
    slices = []
    for index in range(page_count(image_height, page_height)):
        offset = index * page_height
        slices.append(PageSlice(
            index=index,
            offset=offset,
            visible_height=min(page_height, image_height - offset),
        ))
    return slices


class RenderSurface(Protocol):
    """Anything that can be rasterized for export."""

    def export_nodes(self) -> Iterable[DocumentSection]:
        """Nodes flagged export-excluded (toolbars, action buttons)."""

    def capture(self, scale: float) -> Image.Image:
        """Render the visible nodes to a bitmap at ``scale``."""


@contextmanager
def hidden_for_export(surface: RenderSurface) -> Iterator[None]:
    """Hide export-excluded nodes; restore each one's previous visibility on exit."""
    previous = []
    try:
        for node in surface.export_nodes():
            previous.append((node, node.hidden))
            node.hidden = True
        yield
    finally:
        for node, was_hidden in previous:
            node.hidden = was_hidden


def decode_data_uri(src: str) -> Optional[Image.Image]:
    """Decode a ``data:image/...;base64,`` URI; None when it is not usable."""
    if not src or not src.startswith('data:') or ',' not in src:
        return None
    try:
        raw = base64.b64decode(src.split(',', 1)[1])
        img = Image.open(BytesIO(raw))
        img.load()
        return img
    except (ValueError, UnidentifiedImageError, OSError) as e:
        logger.warning(f"[EXPORT] Could not decode embedded image: {e}")
        return None


class _Painter:
    """Vertical flow layout over a Pillow canvas; ``draw=None`` only measures."""

    def __init__(self, width: int, scale: float, fonts, draw: Optional[ImageDraw.ImageDraw] = None,
                 image: Optional[Image.Image] = None):
        self.width = width
        self.scale = scale
        self.fonts = fonts
        self.draw = draw
        self.image = image
        self.margin = self.px(40)
        self.y = self.margin

    def px(self, value: float) -> int:
        return int(round(value * self.scale))

    @property
    def inner_width(self) -> int:
        return self.width - 2 * self.margin

    def text_width(self, text: str, font) -> int:
        if not text:
            return 0
        left, _, right, _ = font.getbbox(text)
        return right - left

    def line_height(self, font) -> int:
        _, top, _, bottom = font.getbbox('國Ag')
        return int((bottom - top) * 1.5)

    def wrap(self, text: str, font, max_width: int) -> List[str]:
        lines = []
        for paragraph in (text or '').split('\n'):
            current = ''
            for char in paragraph:
                if current and self.text_width(current + char, font) > max_width:
                    lines.append(current)
                    current = char
                else:
                    current += char
            lines.append(current)
        return lines

    def text(self, x: int, y: int, text: str, font, fill='#1f2937', bold=False):
        if self.draw is not None and text:
            self.draw.text((x, y), text, font=font, fill=fill, stroke_width=1 if bold else 0, stroke_fill=fill)

    def rect(self, box, outline='#d1d5db', fill=None, width=1):
        if self.draw is not None:
            self.draw.rectangle(box, outline=outline, fill=fill, width=max(1, self.px(width)))

    def line(self, y: int, fill='#e5e7eb'):
        if self.draw is not None:
            self.draw.line((self.margin, y, self.width - self.margin, y), fill=fill, width=max(1, self.px(1)))

    def runs(self, x: int, y: int, runs: Sequence[TextRun], font, max_width: int) -> int:
        """Draw bold/plain runs with character wrapping; returns the height used."""
        line_h = self.line_height(font)
        cursor_x, cursor_y = x, y
        for run in runs:
            for char in run.text:
                if char == '\n':
                    cursor_x, cursor_y = x, cursor_y + line_h
                    continue
                char_w = self.text_width(char, font)
                if cursor_x + char_w > x + max_width and cursor_x > x:
                    cursor_x, cursor_y = x, cursor_y + line_h
                self.text(cursor_x, cursor_y, char, font, bold=run.bold)
                cursor_x += char_w
        return cursor_y + line_h - y

    def image_slot(self, slot: Optional[ImageSlot], box):
        if slot is None:
            return
        left, top, right, bottom = box
        img = decode_data_uri(slot.src) if slot.has_image else None
        if img is None:
            self.rect(box, outline='#9ca3af', fill='#f9fafb')
            label_w = self.text_width(slot.placeholder, self.fonts['small'])
            self.text(left + (right - left - label_w) // 2, top + (bottom - top) // 2 - self.px(6),
                      slot.placeholder, self.fonts['small'], fill='#6b7280')
            return
        if self.image is not None:
            img = img.convert('RGBA')
            img.thumbnail((right - left, bottom - top))
            self.image.paste(img, (left, top), img)


def resolve_cjk_font(font_path: Optional[str] = None, candidates: Optional[Sequence[str]] = None) -> str:
    """
    Font file used for raster text: the configured one, else the first
    installed CJK font.

    Pillow's built-in font has no CJK glyphs and is never used.

    Raises:
        ExportError: the configured file is missing, or none is installed.
    """
    if font_path:
        if os.path.isfile(font_path):
            return font_path
        raise ExportError(f'找不到中文字型檔：{font_path}')
    for candidate in (CJK_FONT_CANDIDATES if candidates is None else candidates):
        if os.path.isfile(candidate):
            return candidate
    raise ExportError('點陣 PDF 需要中文字型，請設定 PDF_FONT_PATH')


def _load_fonts(scale: float, font_path: Optional[str] = None):
    path = resolve_cjk_font(font_path)

    def load(size):
        pixel_size = max(8, int(round(size * scale)))
        try:
            return ImageFont.truetype(path, pixel_size)
        except OSError as e:
            raise ExportError(f'無法載入字型 {path}：{e}') from e

    return {
        'title': load(28),
        'heading': load(16),
        'body': load(12),
        'small': load(10),
    }


class DocumentSurface:
    """Pillow rasterizer for a ``QuoteDocument``."""

    def __init__(self, document: QuoteDocument, font_path: Optional[str] = None,
                 base_width: int = BASE_WIDTH_PX):
        self.document = document
        self.font_path = font_path
        self.base_width = base_width

    def export_nodes(self) -> List[DocumentSection]:
        return [s for s in self.document.sections if s.export_excluded]

    def capture(self, scale: float) -> Image.Image:
        width = int(round(self.base_width * scale))
        fonts = _load_fonts(scale, self.font_path)

        measure = _Painter(width, scale, fonts)
        self._paint(measure)
        height = measure.y + measure.margin

        image = Image.new('RGB', (width, height), 'white')
        painter = _Painter(width, scale, fonts, draw=ImageDraw.Draw(image), image=image)
        self._paint(painter)
        return image

    def _paint(self, p: _Painter):
        for section in self.document.visible_sections:
            if isinstance(section, ActionsSection):
                self._paint_actions(p, section)
            elif isinstance(section, HeaderSection):
                self._paint_header(p, section)
            elif isinstance(section, MetaSection):
                self._paint_meta(p, section)
            elif isinstance(section, ItemsSection):
                self._paint_items(p, section)
            elif isinstance(section, TotalsSection):
                self._paint_totals(p, section)
            elif isinstance(section, BankSection):
                self._paint_bank(p, section)
            elif isinstance(section, NotesSection):
                self._paint_notes(p, section)
            elif isinstance(section, FooterSection):
                self._paint_footer(p, section)
            p.y += p.px(16)

    def _paint_actions(self, p: _Painter, section: ActionsSection):
        x = p.margin
        font = p.fonts['small']
        height = p.line_height(font) + p.px(8)
        for action in section.actions:
            w = p.text_width(action.label, font) + p.px(16)
            p.rect((x, p.y, x + w, p.y + height), outline='#6b7280')
            p.text(x + p.px(8), p.y + p.px(4), action.label, font)
            x += w + p.px(8)
        p.y += height

    def _paint_header(self, p: _Painter, section: HeaderSection):
        top = p.y
        logo_box = (p.margin, top, p.margin + p.px(120), top + p.px(60))
        p.image_slot(section.logo, logo_box)

        title_font = p.fonts['title']
        title_w = p.text_width(section.title, title_font)
        p.text((p.width - title_w) // 2, top, section.title, title_font, bold=True)
        y = top + p.line_height(title_font)

        lines = [section.company_name, section.address]
        contact = ' | '.join(v for v in (section.phone, section.email, section.website) if v)
        lines.append(contact)
        if section.tax_id:
            lines.append(f"統一編號: {section.tax_id}")
        for line in lines:
            if not line:
                continue
            font = p.fonts['heading'] if line == section.company_name else p.fonts['small']
            w = p.text_width(line, font)
            p.text((p.width - w) // 2, y, line, font)
            y += p.line_height(font)

        p.y = max(y, logo_box[3]) + p.px(4)
        p.line(p.y)

    def _paint_fields(self, p: _Painter, x: int, y: int, width: int, title: str, fields) -> int:
        heading, body = p.fonts['heading'], p.fonts['body']
        p.text(x, y, title, heading, bold=True)
        y += p.line_height(heading)
        label_w = p.px(80)
        for f in fields:
            p.text(x, y, f"{f.label}:", body, fill='#6b7280')
            lines = p.wrap(f.value, body, width - label_w)
            for line in lines:
                p.text(x + label_w, y, line, body)
                y += p.line_height(body)
        return y

    def _paint_meta(self, p: _Painter, section: MetaSection):
        half = p.inner_width // 2
        left_bottom = self._paint_fields(p, p.margin, p.y, half - p.px(10), '報價資訊', section.quote_fields)
        right_bottom = self._paint_fields(p, p.margin + half + p.px(10), p.y, half - p.px(10),
                                          section.title, section.customer_fields)
        p.y = max(left_bottom, right_bottom)

    def _paint_items(self, p: _Painter, section: ItemsSection):
        heading, body = p.fonts['heading'], p.fonts['body']
        p.text(p.margin, p.y, section.title, heading, bold=True)
        p.y += p.line_height(heading)

        fractions = (0.2, 0.32, 0.1, 0.08, 0.15, 0.15)
        widths = [int(p.inner_width * f) for f in fractions]
        xs = [p.margin + sum(widths[:i]) for i in range(len(widths))]
        pad = p.px(4)

        row_h = p.line_height(body) + 2 * pad
        p.rect((p.margin, p.y, p.width - p.margin, p.y + row_h), fill='#f3f4f6')
        for x, label in zip(xs, section.columns):
            p.text(x + pad, p.y + pad, label, body, bold=True)
        p.y += row_h

        if not section.rows:
            p.rect((p.margin, p.y, p.width - p.margin, p.y + row_h))
            w = p.text_width(section.empty_label, body)
            p.text((p.width - w) // 2, p.y + pad, section.empty_label, body, fill='#6b7280')
            p.y += row_h
            return

        for row in section.rows:
            cells = [row.product_name, None, row.quantity, row.unit, row.unit_price, row.amount]
            heights = [row_h]
            for i, cell in enumerate(cells):
                if cell is None:
                    used = p.runs(xs[i] + pad, p.y + pad, row.description, body, widths[i] - 2 * pad)
                    heights.append(used + 2 * pad)
                    continue
                lines = p.wrap(cell, body, widths[i] - 2 * pad)
                for n, line in enumerate(lines):
                    p.text(xs[i] + pad, p.y + pad + n * p.line_height(body), line, body)
                heights.append(len(lines) * p.line_height(body) + 2 * pad)
            height = max(heights)
            p.rect((p.margin, p.y, p.width - p.margin, p.y + height))
            p.y += height

    def _paint_totals(self, p: _Painter, section: TotalsSection):
        top = p.y
        stamp_box = (p.margin, top, p.margin + p.px(120), top + p.px(120))
        p.image_slot(section.stamp, stamp_box)

        body, heading = p.fonts['body'], p.fonts['heading']
        x_label = p.width - p.margin - p.px(260)
        y = top
        rows = [('小計', section.subtotal, body), (section.tax_label, section.tax_amount, body),
                ('總計', section.total, heading)]
        for label, value, font in rows:
            p.text(x_label, y, label, font, bold=font is heading)
            w = p.text_width(value, font)
            p.text(p.width - p.margin - w, y, value, font, bold=font is heading)
            y += p.line_height(font)
        p.y = max(y, stamp_box[3])

    def _paint_bank(self, p: _Painter, section: BankSection):
        top = p.y
        half = p.inner_width // 2
        bottom = self._paint_fields(p, p.margin, top, half, section.title, section.fields)
        box_left = p.margin + half + p.px(20)
        box = (box_left, top, box_left + p.px(200), top + p.px(120))
        p.image_slot(section.bankbook, box)
        p.y = max(bottom, box[3])

    def _paint_notes(self, p: _Painter, section: NotesSection):
        heading, body = p.fonts['heading'], p.fonts['body']
        p.text(p.margin, p.y, section.title, heading, bold=True)
        p.y += p.line_height(heading)
        for line in p.wrap(section.text, body, p.inner_width):
            p.text(p.margin, p.y, line, body)
            p.y += p.line_height(body)

    def _paint_footer(self, p: _Painter, section: FooterSection):
        p.line(p.y)
        p.y += p.px(8)
        small = p.fonts['small']
        w = p.text_width(section.generated_at, small)
        p.text((p.width - w) // 2, p.y, section.generated_at, small, fill='#9ca3af')
        p.y += p.line_height(small)


def export_surface_to_pdf(
    surface: RenderSurface,
    filename: str,
    scale: float = 2.0,
    page_height_mm: float = A4_HEIGHT_MM,
    page_width_mm: float = A4_WIDTH_MM,
) -> ExportResult:
    """
    Capture ``surface`` and write it to a paginated PDF.

    Raises:
        ExportError: capture or PDF generation failed. Hidden nodes are
            restored before this propagates.
    """
    try:
        with hidden_for_export(surface):
            image = surface.capture(scale)

        img_width, img_height = image.size
        # Output height in mm at fixed page width
        output_height = img_height * page_width_mm / img_width
        slices = paginate(output_height, page_height_mm)

        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=(page_width_mm * mm, page_height_mm * mm))
        reader = ImageReader(image.convert('RGB'))
        for page in slices:
            # Same bitmap on every page, shifted up by the page offset
            bottom = page_height_mm + page.offset - output_height
            pdf.drawImage(reader, 0, bottom * mm, width=page_width_mm * mm, height=output_height * mm)
            pdf.showPage()
        pdf.save()
    except ExportError:
        raise
    except Exception as e:
        logger.exception(f"[EXPORT] Raster export failed for {filename}")
        raise ExportError(str(e)) from e

    logger.info(f"[EXPORT] {filename}: {len(slices)} page(s), image {img_width}x{img_height}px")
    return ExportResult(filename=filename, content=buffer.getvalue(), page_count=len(slices))
