"""
Receipt builder and renderers.

build_receipt is a pure projection of a committed transaction plus the
store identity. Layouts only decide how the same fields are arranged:
ThermalLayout for narrow roll printers, PageLayout for a standard page
(plain text), and render_receipt_pdf for an A4 PDF.
"""
import logging
import textwrap
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import List, Optional, Tuple, Union
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from pos.checkout.backends import Backend, BackendError
from pos.checkout.history import get_transaction
from pos.checkout.records import StoreIdentity, TransactionRecord
from pos.checkout.result import Result
from pos.exceptions import ValidationError
from pos.utils.formatters import money, receipt_datetime

logger = logging.getLogger(__name__)

DEFAULT_FOOTER = 'Thank you for your purchase!'
CLOSING_LINE = 'Please come again'


@dataclass(frozen=True)
class ReceiptLine:
    name: str
    quantity: int
    price_each: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class Receipt:
    store: StoreIdentity
    transaction_number: str
    created_at: datetime
    cashier_name: str
    payment_label: str
    lines: Tuple[ReceiptLine, ...] = field(default_factory=tuple)
    subtotal: Decimal = Decimal('0.00')
    total: Decimal = Decimal('0.00')
    amount_paid: Decimal = Decimal('0.00')
    change: Decimal = Decimal('0.00')
    notes: Optional[str] = None

    @property
    def footer(self) -> str:
        return self.store.footer or DEFAULT_FOOTER

    @property
    def barcode(self) -> str:
        return f"* {self.transaction_number} *"


def build_receipt(transaction: TransactionRecord, store: StoreIdentity) -> Receipt:
    """Project a committed transaction and the store identity into a Receipt."""
    return Receipt(
        store=store,
        transaction_number=transaction.transaction_number,
        created_at=transaction.created_at,
        cashier_name=transaction.cashier_name,
        payment_label=transaction.payment_type.replace('-', ' ').upper(),
        lines=tuple(
            ReceiptLine(
                name=item.product_name,
                quantity=item.quantity,
                price_each=item.price_each,
                subtotal=item.subtotal
            )
            for item in transaction.items
        ),
        subtotal=transaction.items_total,
        total=transaction.total_amount,
        amount_paid=transaction.amount_paid,
        change=transaction.change_amount,
        notes=transaction.notes
    )


def load_store_identity(backend: Backend, fallback: StoreIdentity) -> StoreIdentity:
    """Store identity from Settings, or the fallback when Settings cannot be read."""
    try:
        data = backend.get_settings()
        if data is None:
            logger.info("[RECEIPT] No store settings saved, using defaults")
            return fallback
        return StoreIdentity.from_dict(data)
    except BackendError as e:
        logger.warning(f"[RECEIPT] Settings unavailable, using defaults: {e}")
        return fallback
    except ValidationError as e:
        logger.warning(f"[RECEIPT] Settings malformed, using defaults: {e.message}")
        return fallback


def receipt_for_transaction(backend: Backend, transaction_id, fallback: StoreIdentity) -> Result:
    """Reprint path: read the transaction and build its receipt."""
    read = get_transaction(backend, transaction_id)
    if not read.ok:
        return read
    return Result.success(build_receipt(read.data, load_store_identity(backend, fallback)))


# =====================================================
# TEXT LAYOUTS
# =====================================================

class ReceiptLayout:
    """Plain text layout of a fixed character width."""

    name = 'base'

    def __init__(self, width: int, currency_symbol: str = '₱'):
        self.width = width
        self.currency_symbol = currency_symbol

    def money(self, value) -> str:
        return money(value, self.currency_symbol)

    def rule(self) -> str:
        return '-' * self.width

    def center(self, text: str) -> List[str]:
        return [line.center(self.width).rstrip() for line in textwrap.wrap(text, self.width)] or ['']

    def columns(self, left: str, right: str) -> str:
        gap = self.width - len(left) - len(right)
        if gap < 1:
            return f"{left}\n{right.rjust(self.width)}"
        return f"{left}{' ' * gap}{right}"

    def header(self, receipt: Receipt) -> List[str]:
        store = receipt.store
        lines = self.center(store.name.upper())
        if store.address:
            lines += self.center(store.address)
        contact = ' | '.join(part for part in (
            f"Tel: {store.phone}" if store.phone else '',
            store.email
        ) if part)
        if contact:
            lines += self.center(contact)
        return lines

    def details(self, receipt: Receipt) -> List[str]:
        return [
            self.columns('Transaction #:', receipt.transaction_number),
            self.columns('Date:', receipt_datetime(receipt.created_at)),
            self.columns('Cashier:', receipt.cashier_name),
            self.columns('Payment:', receipt.payment_label),
        ]

    def items(self, receipt: Receipt) -> List[str]:
        raise NotImplementedError

    def totals(self, receipt: Receipt) -> List[str]:
        return [
            self.columns('Subtotal', self.money(receipt.subtotal)),
            self.columns('TOTAL', self.money(receipt.total)),
            self.columns('Amount Paid', self.money(receipt.amount_paid)),
            self.columns('CHANGE', self.money(receipt.change)),
        ]

    def footer(self, receipt: Receipt) -> List[str]:
        lines = []
        if receipt.notes:
            lines += textwrap.wrap(f"Note: {receipt.notes}", self.width)
        lines += self.center(receipt.footer)
        lines += self.center(CLOSING_LINE)
        lines += [''] + self.center(receipt.barcode)
        return lines

    def render(self, receipt: Receipt) -> str:
        sections = [
            self.header(receipt),
            self.details(receipt),
            self.items(receipt),
            self.totals(receipt),
            self.footer(receipt),
        ]
        out = []
        for index, section in enumerate(sections):
            if index:
                out.append(self.rule())
            out.extend(section)
        return '\n'.join(out) + '\n'


class ThermalLayout(ReceiptLayout):
    """Narrow roll: item name on its own line, quantity and amounts below."""

    name = 'thermal'

    def __init__(self, width: int = 32, currency_symbol: str = '₱'):
        super().__init__(width, currency_symbol)

    def items(self, receipt: Receipt) -> List[str]:
        lines = []
        for line in receipt.lines:
            lines += textwrap.wrap(line.name, self.width) or ['']
            lines.append(self.columns(
                f"  {line.quantity} x {self.money(line.price_each)}",
                self.money(line.subtotal)
            ))
        return lines


class PageLayout(ReceiptLayout):
    """Standard page: one table row per item (Item / Qty / Price / Total)."""

    name = 'page'

    QTY_WIDTH = 5
    AMOUNT_WIDTH = 14

    def __init__(self, width: int = 64, currency_symbol: str = '₱'):
        super().__init__(width, currency_symbol)

    def _row(self, name: str, qty: str, price: str, total: str) -> str:
        name_width = self.width - self.QTY_WIDTH - 2 * self.AMOUNT_WIDTH
        if len(name) > name_width:
            name = name[:name_width - 1] + '…'
        return (
            f"{name:<{name_width}}{qty:>{self.QTY_WIDTH}}"
            f"{price:>{self.AMOUNT_WIDTH}}{total:>{self.AMOUNT_WIDTH}}"
        )

    def items(self, receipt: Receipt) -> List[str]:
        lines = [self._row('Item', 'Qty', 'Price', 'Total')]
        for line in receipt.lines:
            lines.append(self._row(
                line.name,
                str(line.quantity),
                self.money(line.price_each),
                self.money(line.subtotal)
            ))
        return lines


LAYOUTS = {
    ThermalLayout.name: ThermalLayout,
    PageLayout.name: PageLayout,
}


def get_layout(name: str, width: Optional[int] = None, currency_symbol: str = '₱') -> ReceiptLayout:
    """
    Layout strategy by name ('thermal' or 'page').

    Raises:
        ValueError: for an unknown layout name
    """
    try:
        layout_class = LAYOUTS[(name or '').lower()]
    except KeyError:
        raise ValueError(f"Unknown receipt layout: {name!r}. Expected one of {sorted(LAYOUTS)}")
    if width:
        return layout_class(width=width, currency_symbol=currency_symbol)
    return layout_class(currency_symbol=currency_symbol)


def render_receipt(receipt: Receipt, layout: Union[str, ReceiptLayout] = 'thermal') -> str:
    if isinstance(layout, str):
        layout = get_layout(layout)
    return layout.render(receipt)


# =====================================================
# PDF
# =====================================================

def render_receipt_pdf(receipt: Receipt, currency_symbol: str = 'PHP ') -> BytesIO:
    """
    Render the receipt as an A4 PDF.

    The standard PDF fonts have no peso sign, hence the currency code default.
    """
    def fmt(value) -> str:
        return money(value, currency_symbol)

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch,
        title=receipt.transaction_number
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'ReceiptTitle',
        parent=styles['Heading1'],
        fontSize=20,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=8,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )
    header_style = ParagraphStyle(
        'ReceiptHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=4
    )
    footer_style = ParagraphStyle(
        'ReceiptFooter',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#34495E'),
        alignment=TA_CENTER
    )

    # 1. Store header
    store = receipt.store
    elements.append(Paragraph(escape(store.name), title_style))
    if store.address:
        elements.append(Paragraph(escape(store.address), header_style))
    contact_parts = []
    if store.phone:
        contact_parts.append(f"Tel: {escape(store.phone)}")
    if store.email:
        contact_parts.append(escape(store.email))
    if contact_parts:
        elements.append(Paragraph(" | ".join(contact_parts), header_style))
    elements.append(Spacer(1, 0.3*inch))

    # 2. Transaction details
    details_table = Table([
        ['Transaction #:', receipt.transaction_number],
        ['Date & Time:', receipt_datetime(receipt.created_at)],
        ['Cashier:', receipt.cashier_name],
        ['Payment:', receipt.payment_label],
    ], colWidths=[1.6*inch, 4*inch])
    details_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(details_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Items
    table_data = [['Item', 'Qty', 'Price', 'Total']]
    for line in receipt.lines:
        table_data.append([line.name, str(line.quantity), fmt(line.price_each), fmt(line.subtotal)])
    items_table = Table(table_data, colWidths=[3.3*inch, 0.7*inch, 1.3*inch, 1.3*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#2C3E50')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 10),
        ('ALIGN', (1, 0), (1, -1), 'CENTER'),
        ('ALIGN', (2, 0), (3, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals
    totals_table = Table([
        ['Subtotal:', fmt(receipt.subtotal)],
        ['TOTAL:', fmt(receipt.total)],
        ['Amount Paid:', fmt(receipt.amount_paid)],
        ['CHANGE:', fmt(receipt.change)],
    ], colWidths=[5.3*inch, 1.3*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('FONTNAME', (0, 1), (-1, 1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 1), (-1, 1), 13),
        ('FONTNAME', (0, 3), (-1, 3), 'Helvetica-Bold'),
        ('TEXTCOLOR', (0, 1), (-1, 1), colors.HexColor('#27AE60')),
        ('LINEABOVE', (0, 1), (-1, 1), 1, colors.HexColor('#27AE60')),
    ]))
    elements.append(totals_table)
    elements.append(Spacer(1, 0.4*inch))

    # 5. Footer
    footer_text = f"{escape(receipt.footer)}<br/>{CLOSING_LINE}"
    if receipt.notes:
        footer_text = f"<b>Note:</b> {escape(receipt.notes)}<br/><br/>" + footer_text
    elements.append(Paragraph(footer_text, footer_style))
    elements.append(Spacer(1, 0.2*inch))
    elements.append(Paragraph(f"<font face='Courier'>{escape(receipt.barcode)}</font>", footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer
