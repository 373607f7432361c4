"""
Document renderer for quotes.

``build_quote_document`` turns a quote aggregate plus the company/bank
settings into one presentation tree. The on-screen view, the print view,
the HTML export, the vector PDF and the raster PDF all consume that same
tree, and every figure in it is already formatted with the shared
formatters, so the outputs cannot drift apart.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional, Sequence

from flask import render_template

from app.models import QuoteStatus
from app.services.quote_aggregate import QuoteAggregate, is_resolved
from app.services.settings_service import BankSettings, CompanySettings
from app.services.totals import Totals
from app.utils.formatters import (
    date_tw, datetime_tw, format_currency, format_percent, format_quantity
)
from app.utils.rich_text import TextRun, parse_bold_runs

logger = logging.getLogger(__name__)

DOCUMENT_TITLE = '報價單'
NO_ITEMS_LABEL = '暫無項目'

SECTION_ORDER = ('header', 'meta', 'items', 'totals', 'bank', 'notes', 'footer')


@dataclass
class Field:
    label: str
    value: str


@dataclass
class ImageSlot:
    """An optional image; renders a labeled placeholder box when empty."""
    key: str
    label: str
    src: str = ''
    placeholder: str = ''
    # Upload-on-click target, interaction-only: cleared in read-only mode
    upload_url: Optional[str] = None

    @property
    def has_image(self) -> bool:
        return bool(self.src)


@dataclass
class ItemRow:
    index: int
    product_name: str
    description: List[TextRun]
    quantity: str
    unit: str
    unit_price: str
    amount: str


@dataclass
class Action:
    label: str
    url: str
    method: str = 'get'
    edit: bool = True
    css: str = 'btn-outline-secondary'
    confirm: Optional[str] = None


@dataclass
class DocumentSection:
    key: str
    title: str = ''
    export_excluded: bool = False
    interaction_only: bool = False
    hidden: bool = False


@dataclass
class HeaderSection(DocumentSection):
    company_name: str = ''
    address: str = ''
    phone: str = ''
    email: str = ''
    website: str = ''
    tax_id: str = ''
    logo: Optional[ImageSlot] = None


@dataclass
class MetaSection(DocumentSection):
    quote_fields: List[Field] = field(default_factory=list)
    customer_fields: List[Field] = field(default_factory=list)
    customer_resolved: bool = True
    status_label: str = ''


@dataclass
class ItemsSection(DocumentSection):
    columns: Sequence[str] = ('項目', '說明', '數量', '單位', '單價', '小計')
    rows: List[ItemRow] = field(default_factory=list)
    empty_label: str = NO_ITEMS_LABEL


@dataclass
class TotalsSection(DocumentSection):
    subtotal: str = ''
    tax_label: str = ''
    tax_amount: str = ''
    total: str = ''
    is_empty: bool = False
    empty_label: str = NO_ITEMS_LABEL
    stamp: Optional[ImageSlot] = None
    totals: Optional[Totals] = None


@dataclass
class BankSection(DocumentSection):
    fields: List[Field] = field(default_factory=list)
    bankbook: Optional[ImageSlot] = None


@dataclass
class NotesSection(DocumentSection):
    text: str = ''


@dataclass
class FooterSection(DocumentSection):
    generated_at: str = ''


@dataclass
class ActionsSection(DocumentSection):
    actions: List[Action] = field(default_factory=list)


@dataclass
class QuoteDocument:
    title: str
    quote_number: str
    read_only: bool
    sections: List[DocumentSection]
    aggregate: QuoteAggregate

    def section(self, key: str) -> Optional[DocumentSection]:
        for section in self.sections:
            if section.key == key:
                return section
        return None

    @property
    def visible_sections(self) -> List[DocumentSection]:
        return [s for s in self.sections if not s.hidden]

    @property
    def content_sections(self) -> List[DocumentSection]:
        """Informational sections only (no toolbar), in canonical order."""
        return [s for s in self.sections if s.key in SECTION_ORDER and not s.hidden]


def _non_empty(fields_: List[Field]) -> List[Field]:
    return [f for f in fields_ if f.value]


def _header(company: CompanySettings, read_only: bool, upload_url: Optional[str]) -> HeaderSection:
    return HeaderSection(
        key='header',
        title=DOCUMENT_TITLE,
        company_name=company.company_name,
        address=company.address,
        phone=company.phone,
        email=company.email,
        website=company.website,
        tax_id=company.tax_id,
        logo=ImageSlot(
            key='logo',
            label='公司Logo',
            src=company.logo,
            placeholder='公司Logo',
            upload_url=None if read_only else upload_url,
        ),
    )


def _meta(aggregate: QuoteAggregate) -> MetaSection:
    customer = aggregate.customer
    quote_fields = [
        Field('報價單號', aggregate.quote_number),
        Field('報價日期', date_tw(aggregate.quote_date)),
        Field('有效期限', date_tw(aggregate.valid_until)),
        Field('負責人', aggregate.staff.label),
    ]
    if is_resolved(aggregate.staff):
        quote_fields.extend(_non_empty([
            Field('職稱', aggregate.staff.title),
            Field('負責人電話', aggregate.staff.phone),
            Field('負責人Email', aggregate.staff.email),
        ]))

    customer_fields = [
        Field('公司名稱', customer.label),
        Field('聯絡人', aggregate.contact_person or (customer.contact_person if is_resolved(customer) else '')),
    ]
    if is_resolved(customer):
        customer_fields.extend(_non_empty([
            Field('電話', customer.phone),
            Field('電子郵件', customer.email),
            Field('地址', customer.address),
            Field('統一編號', customer.tax_id),
        ]))

    return MetaSection(
        key='meta',
        title='客戶資訊',
        quote_fields=quote_fields,
        customer_fields=customer_fields,
        customer_resolved=is_resolved(customer),
        status_label=QuoteStatus.label_for(aggregate.status),
    )


def _items(aggregate: QuoteAggregate) -> ItemsSection:
    rows = [
        ItemRow(
            index=position,
            product_name=item.product_name,
            description=parse_bold_runs(item.description),
            quantity=format_quantity(item.quantity),
            unit=item.unit,
            unit_price=format_currency(item.unit_price),
            amount=format_currency(item.amount),
        )
        for position, item in enumerate(aggregate.items, start=1)
    ]
    return ItemsSection(key='items', title='報價項目', rows=rows)


def _totals(aggregate: QuoteAggregate, company: CompanySettings, read_only: bool,
            upload_url: Optional[str]) -> TotalsSection:
    totals = aggregate.totals
    return TotalsSection(
        key='totals',
        subtotal=format_currency(totals.subtotal),
        tax_label=f"稅額 ({format_percent(totals.tax_rate)})",
        tax_amount=format_currency(totals.tax_amount),
        total=format_currency(totals.total),
        is_empty=totals.is_empty,
        totals=totals,
        stamp=ImageSlot(
            key='stamp',
            label='報價章',
            src=company.stamp,
            placeholder='報價章',
            upload_url=None if read_only else upload_url,
        ),
    )


def _bank(aggregate: QuoteAggregate, bank_settings: BankSettings, read_only: bool,
          upload_url: Optional[str]) -> Optional[BankSection]:
    bank = aggregate.bank
    if not is_resolved(bank):
        return None
    return BankSection(
        key='bank',
        title='匯款資訊',
        fields=[
            Field('銀行名稱', bank.bank_name),
            Field('帳戶號碼', bank.account_number),
            Field('戶名', bank.account_name),
        ] + _non_empty([
            Field('分行', bank.branch_name),
            Field('SWIFT', bank.swift_code),
            Field('備註', bank.notes),
        ]),
        bankbook=ImageSlot(
            key='bankbook',
            label='存摺圖檔',
            src=bank_settings.bankbook_image,
            placeholder='存摺圖檔',
            upload_url=None if read_only else upload_url,
        ),
    )


def build_quote_document(
    aggregate: QuoteAggregate,
    company: CompanySettings,
    bank_settings: Optional[BankSettings] = None,
    read_only: bool = False,
    generated_at: Optional[datetime] = None,
    actions: Optional[List[Action]] = None,
    upload_urls: Optional[dict] = None,
) -> QuoteDocument:
    """
    Build the canonical document for a quote.

    Sections, in order: header, meta (quote + customer), items, totals with
    stamp, bank (only when the bank resolves), notes (only when present),
    footer. ``read_only`` drops edit actions, interaction-only sections and
    upload affordances without touching the informational content.
    """
    bank_settings = bank_settings or BankSettings()
    upload_urls = upload_urls or {}
    generated_at = generated_at or datetime.now()

    sections: List[DocumentSection] = []
    if actions:
        visible_actions = [a for a in actions if not (read_only and a.edit)]
        if visible_actions:
            sections.append(ActionsSection(
                key='actions',
                export_excluded=True,
                interaction_only=any(a.edit for a in visible_actions),
                actions=visible_actions,
            ))

    sections.append(_header(company, read_only, upload_urls.get('logo')))
    sections.append(_meta(aggregate))
    sections.append(_items(aggregate))
    sections.append(_totals(aggregate, company, read_only, upload_urls.get('stamp')))

    bank_section = _bank(aggregate, bank_settings, read_only, upload_urls.get('bankbook'))
    if bank_section:
        sections.append(bank_section)

    if aggregate.notes:
        sections.append(NotesSection(key='notes', title='備註', text=aggregate.notes))

    sections.append(FooterSection(
        key='footer',
        generated_at=f"此報價單由系統自動生成，生成時間: {datetime_tw(generated_at)}",
    ))

    if read_only:
        sections = [s for s in sections if not s.interaction_only]

    return QuoteDocument(
        title=f"{DOCUMENT_TITLE} - {aggregate.quote_number}",
        quote_number=aggregate.quote_number,
        read_only=read_only,
        sections=sections,
        aggregate=aggregate,
    )


def as_read_only(document: QuoteDocument) -> QuoteDocument:
    """Read-only copy of an already built document (same content and layout)."""
    sections = []
    for section in document.sections:
        if section.interaction_only:
            continue
        section = replace(section)
        if isinstance(section, ActionsSection):
            section.actions = [a for a in section.actions if not a.edit]
            if not section.actions:
                continue
        for slot_name in ('logo', 'stamp', 'bankbook'):
            slot = getattr(section, slot_name, None)
            if slot is not None:
                setattr(section, slot_name, replace(slot, upload_url=None))
        sections.append(section)
    return replace(document, read_only=True, sections=sections)


def render_quote_html(document: QuoteDocument) -> str:
    """Self-contained HTML export (inline styles, data-URI images only)."""
    logger.info(f"[EXPORT] Rendering HTML for quote {document.quote_number}")
    return render_template('quotes/export.html', document=document)
