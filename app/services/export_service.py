"""
Export service: quote PDF (vector or raster), quote list PDF, filenames.
"""
import base64
import logging
from datetime import date, datetime
from io import BytesIO
from typing import Iterable, List, Optional, Tuple, Union
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.fonts import addMapping
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.pdfgen import canvas
from reportlab.platypus import Image as RLImage
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.exceptions import ExportError
from app.models import QuoteStatus
from app.services.document_service import (
    BankSection, FooterSection, HeaderSection, ImageSlot, ItemsSection,
    MetaSection, NotesSection, QuoteDocument, TotalsSection
)
from app.services.quote_aggregate import QuoteAggregate
from app.services.raster_export import (
    A4_HEIGHT_MM, DocumentSurface, ExportResult, export_surface_to_pdf
)
from app.services.totals import ZERO
from app.utils.formatters import date_tw, datetime_tw, format_currency
from app.utils.rich_text import TextRun

logger = logging.getLogger(__name__)

QUOTE_LABEL = '報價單'
QUOTE_LIST_LABEL = '報價單列表'

PDF_MODE_VECTOR = 'vector'
PDF_MODE_RASTER = 'raster'

# Built-in Traditional Chinese CID fonts, no font files needed
CJK_FONT = 'MSung-Light'
CJK_FONT_BOLD = 'MHei-Medium'

# List layout, in mm from the top of the page
LIST_COLUMNS = (
    ('報價單號', 20),
    ('客戶名稱', 60),
    ('聯絡人', 100),
    ('報價日期', 130),
    ('總金額', 160),
    ('狀態', 180),
)
LIST_HEADER_Y = 50
LIST_ROW_HEIGHT = 8
LIST_BOTTOM_Y = 270
LIST_TOP_Y = 20

_fonts_registered = False


def register_cjk_fonts():
    global _fonts_registered
    if _fonts_registered:
        return
    pdfmetrics.registerFont(UnicodeCIDFont(CJK_FONT))
    pdfmetrics.registerFont(UnicodeCIDFont(CJK_FONT_BOLD))
    addMapping(CJK_FONT, 0, 0, CJK_FONT)
    addMapping(CJK_FONT, 1, 0, CJK_FONT_BOLD)
    addMapping(CJK_FONT, 0, 1, CJK_FONT)
    addMapping(CJK_FONT, 1, 1, CJK_FONT_BOLD)
    _fonts_registered = True


def build_export_filename(label: str, extension: str, now: Union[date, datetime],
                          reference: Optional[str] = None) -> str:
    """``<label>_<reference>_<YYYY-MM-DD>.<ext>``; the reference part is optional."""
    day = now.date() if isinstance(now, datetime) else now
    parts = [label]
    if reference:
        parts.append(reference)
    parts.append(day.isoformat())
    return f"{'_'.join(parts)}.{extension.lstrip('.')}"


def runs_to_markup(runs: Iterable[TextRun]) -> str:
    """Paragraph markup for rich-text runs; text is XML-escaped."""
    out = []
    for run in runs:
        text = escape(run.text).replace('\n', '<br/>')
        out.append(f"<b>{text}</b>" if run.bold else text)
    return ''.join(out)


def _slot_flowable(slot: Optional[ImageSlot], width: float, height: float, style):
    """The slot's image scaled into the box, or a bordered placeholder."""
    if slot is not None and slot.has_image and ',' in slot.src:
        try:
            raw = base64.b64decode(slot.src.split(',', 1)[1])
            img_w, img_h = ImageReader(BytesIO(raw)).getSize()
            ratio = min(width / img_w, height / img_h)
            return RLImage(BytesIO(raw), width=img_w * ratio, height=img_h * ratio)
        except (ValueError, OSError) as e:
            logger.warning(f"[EXPORT] Embedded {slot.key} image unreadable: {e}")

    placeholder = Table([[Paragraph(escape(slot.placeholder if slot else ''), style)]],
                        colWidths=[width], rowHeights=[height])
    placeholder.setStyle(TableStyle([
        ('BOX', (0, 0), (-1, -1), 0.5, colors.HexColor('#9CA3AF')),
        ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor('#F9FAFB')),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
    ]))
    return placeholder


def _styles():
    styles = getSampleStyleSheet()
    return {
        'title': ParagraphStyle('QuoteTitle', parent=styles['Heading1'], fontName=CJK_FONT_BOLD,
                                fontSize=22, alignment=TA_CENTER, textColor=colors.HexColor('#1F2937'),
                                spaceAfter=6),
        'company': ParagraphStyle('Company', parent=styles['Normal'], fontName=CJK_FONT_BOLD,
                                  fontSize=13, alignment=TA_CENTER, leading=18),
        'header': ParagraphStyle('Header', parent=styles['Normal'], fontName=CJK_FONT,
                                 fontSize=9, alignment=TA_CENTER, textColor=colors.HexColor('#6B7280')),
        'heading': ParagraphStyle('Heading', parent=styles['Normal'], fontName=CJK_FONT_BOLD,
                                  fontSize=12, leading=16, spaceAfter=4),
        'body': ParagraphStyle('Body', parent=styles['Normal'], fontName=CJK_FONT, fontSize=9, leading=13),
        'right': ParagraphStyle('Right', parent=styles['Normal'], fontName=CJK_FONT, fontSize=9,
                                leading=13, alignment=TA_RIGHT),
        'placeholder': ParagraphStyle('Placeholder', parent=styles['Normal'], fontName=CJK_FONT,
                                      fontSize=8, alignment=TA_CENTER, textColor=colors.HexColor('#6B7280')),
        'footer': ParagraphStyle('Footer', parent=styles['Normal'], fontName=CJK_FONT, fontSize=8,
                                 alignment=TA_CENTER, textColor=colors.HexColor('#9CA3AF')),
    }


def _field_table(fields, style, width):
    rows = [[Paragraph(escape(f.label), style), Paragraph(escape(f.value or ''), style)] for f in fields]
    table = Table(rows or [['', '']], colWidths=[25 * mm, width - 25 * mm])
    table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('TEXTCOLOR', (0, 0), (0, -1), colors.HexColor('#6B7280')),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
    ]))
    return table


def render_quote_pdf(document: QuoteDocument) -> Tuple[bytes, int]:
    """
    Vector PDF of the canonical document (reportlab platypus).

    Export-excluded and hidden sections are skipped; everything else is
    laid out in document order.
    """
    register_cjk_fonts()
    st = _styles()

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=15 * mm,
        leftMargin=15 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=document.title,
    )
    width = doc.width
    elements = []

    for section in document.content_sections:
        if section.export_excluded:
            continue

        if isinstance(section, HeaderSection):
            logo = _slot_flowable(section.logo, 35 * mm, 18 * mm, st['placeholder'])
            lines = [Paragraph(escape(section.title), st['title'])]
            if section.company_name:
                lines.append(Paragraph(escape(section.company_name), st['company']))
            if section.address:
                lines.append(Paragraph(escape(section.address), st['header']))
            contact = ' | '.join(v for v in (section.phone, section.email, section.website) if v)
            if contact:
                lines.append(Paragraph(escape(contact), st['header']))
            if section.tax_id:
                lines.append(Paragraph(escape(f"統一編號: {section.tax_id}"), st['header']))
            header = Table([[logo, lines, '']], colWidths=[40 * mm, width - 80 * mm, 40 * mm])
            header.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP')]))
            elements.append(header)
            elements.append(Spacer(1, 6 * mm))

        elif isinstance(section, MetaSection):
            half = width / 2
            left = [Paragraph('報價資訊', st['heading']), _field_table(section.quote_fields, st['body'], half - 5 * mm)]
            right = [Paragraph(escape(section.title), st['heading']),
                     _field_table(section.customer_fields, st['body'], half - 5 * mm)]
            meta = Table([[left, right]], colWidths=[half, half])
            meta.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP')]))
            elements.append(meta)
            elements.append(Spacer(1, 5 * mm))

        elif isinstance(section, ItemsSection):
            elements.append(Paragraph(escape(section.title), st['heading']))
            data = [[Paragraph(f"<b>{escape(c)}</b>", st['body']) for c in section.columns]]
            if section.rows:
                for row in section.rows:
                    data.append([
                        Paragraph(escape(row.product_name), st['body']),
                        Paragraph(runs_to_markup(row.description), st['body']),
                        Paragraph(row.quantity, st['right']),
                        Paragraph(escape(row.unit), st['body']),
                        Paragraph(row.unit_price, st['right']),
                        Paragraph(row.amount, st['right']),
                    ])
            else:
                data.append([Paragraph(escape(section.empty_label), st['placeholder']), '', '', '', '', ''])
            fractions = (0.2, 0.32, 0.1, 0.08, 0.15, 0.15)
            items_table = Table(data, colWidths=[width * f for f in fractions], repeatRows=1)
            style = [
                ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#F3F4F6')),
                ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#D1D5DB')),
                ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ]
            if not section.rows:
                style.append(('SPAN', (0, 1), (-1, 1)))
            items_table.setStyle(TableStyle(style))
            elements.append(items_table)
            elements.append(Spacer(1, 4 * mm))

        elif isinstance(section, TotalsSection):
            stamp = _slot_flowable(section.stamp, 35 * mm, 35 * mm, st['placeholder'])
            sums = Table([
                [Paragraph('小計', st['body']), Paragraph(section.subtotal, st['right'])],
                [Paragraph(escape(section.tax_label), st['body']), Paragraph(section.tax_amount, st['right'])],
                [Paragraph('<b>總計</b>', st['heading']), Paragraph(f"<b>{section.total}</b>", st['right'])],
            ], colWidths=[35 * mm, 40 * mm])
            sums.setStyle(TableStyle([
                ('LINEABOVE', (0, 2), (-1, 2), 1, colors.HexColor('#1F2937')),
                ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ]))
            block = Table([[stamp, '', sums]], colWidths=[40 * mm, width - 120 * mm, 80 * mm])
            block.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP')]))
            elements.append(block)
            elements.append(Spacer(1, 5 * mm))

        elif isinstance(section, BankSection):
            half = width / 2
            info = [Paragraph(escape(section.title), st['heading']),
                    _field_table(section.fields, st['body'], half - 5 * mm)]
            bankbook = _slot_flowable(section.bankbook, 60 * mm, 35 * mm, st['placeholder'])
            bank = Table([[info, bankbook]], colWidths=[half, half])
            bank.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP')]))
            elements.append(bank)
            elements.append(Spacer(1, 5 * mm))

        elif isinstance(section, NotesSection):
            elements.append(Paragraph(escape(section.title), st['heading']))
            elements.append(Paragraph(escape(section.text).replace('\n', '<br/>'), st['body']))
            elements.append(Spacer(1, 5 * mm))

        elif isinstance(section, FooterSection):
            elements.append(Spacer(1, 4 * mm))
            elements.append(Paragraph(escape(section.generated_at), st['footer']))

    doc.build(elements)
    return buffer.getvalue(), doc.page


def export_quote_pdf(document: QuoteDocument, now: datetime, mode: str = PDF_MODE_VECTOR,
                     scale: float = 2.0, page_height_mm: float = A4_HEIGHT_MM,
                     font_path: Optional[str] = None) -> ExportResult:
    """Single-quote PDF in the configured mode.

    Raises:
        ExportError: rendering failed or ``mode`` is unknown.
    """
    filename = build_export_filename(QUOTE_LABEL, 'pdf', now, document.quote_number)
    logger.info(f"[EXPORT] Quote {document.quote_number} as PDF ({mode})")

    if mode == PDF_MODE_RASTER:
        return export_surface_to_pdf(DocumentSurface(document, font_path=font_path), filename,
                                     scale=scale, page_height_mm=page_height_mm)
    if mode != PDF_MODE_VECTOR:
        raise ExportError(f'未知的PDF模式 {mode}')

    try:
        content, pages = render_quote_pdf(document)
    except Exception as e:
        logger.exception(f"[EXPORT] Vector export failed for {document.quote_number}")
        raise ExportError(str(e)) from e
    return ExportResult(filename=filename, content=content, page_count=pages)


def export_quote_list_pdf(quotes: List[QuoteAggregate], now: datetime) -> ExportResult:
    """
    Plain text/table PDF summarizing many quotes (no rasterization).

    One row per quote, a new page whenever the cursor passes the bottom
    margin, then a summary with the count and the summed total.
    """
    register_cjk_fonts()
    filename = build_export_filename(QUOTE_LIST_LABEL, 'pdf', now)
    try:
        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=A4)
        page_height = A4[1]
        pages = 1

        def at(y_mm):
            return page_height - y_mm * mm

        pdf.setTitle(QUOTE_LIST_LABEL)
        pdf.setFont(CJK_FONT_BOLD, 20)
        pdf.drawCentredString(105 * mm, at(20), QUOTE_LIST_LABEL)
        pdf.setFont(CJK_FONT, 10)
        pdf.drawString(20 * mm, at(30), f"生成日期: {date_tw(now)}")

        y = LIST_HEADER_Y
        pdf.setFont(CJK_FONT_BOLD, 12)
        for label, x in LIST_COLUMNS:
            pdf.drawString(x * mm, at(y), label)
        pdf.line(20 * mm, at(y + 2), 190 * mm, at(y + 2))
        y += 10

        total_amount = ZERO
        pdf.setFont(CJK_FONT, 10)
        for quote in quotes:
            if y > LIST_BOTTOM_Y:
                pdf.showPage()
                pdf.setFont(CJK_FONT, 10)
                pages += 1
                y = LIST_TOP_Y
            values = (
                quote.quote_number,
                quote.customer.label or '未知',
                quote.contact_person or '',
                date_tw(quote.quote_date),
                format_currency(quote.totals.total),
                QuoteStatus.label_for(quote.status),
            )
            for (_, x), value in zip(LIST_COLUMNS, values):
                pdf.drawString(x * mm, at(y), value)
            total_amount += quote.totals.total
            y += LIST_ROW_HEIGHT

        y += 10
        if y > LIST_BOTTOM_Y:
            pdf.showPage()
            pages += 1
            y = LIST_TOP_Y
        pdf.line(20 * mm, at(y), 190 * mm, at(y))
        y += 10
        pdf.setFont(CJK_FONT, 12)
        pdf.drawString(20 * mm, at(y), f"總計: {len(quotes)} 筆報價單")
        pdf.drawString(20 * mm, at(y + 10), f"總金額: {format_currency(total_amount)}")

        pdf.showPage()
        pdf.save()
    except Exception as e:
        logger.exception("[EXPORT] Quote list export failed")
        raise ExportError(str(e)) from e

    logger.info(f"[EXPORT] Quote list: {len(quotes)} quote(s), {pages} page(s) at {datetime_tw(now)}")
    return ExportResult(filename=filename, content=buffer.getvalue(), page_count=pages)
