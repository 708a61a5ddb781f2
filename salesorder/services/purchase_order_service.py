"""
Purchase order service.
Renders the purchase order document of an approved order and records it.
"""
import logging
from datetime import datetime, timezone
from io import BytesIO
from xml.sax.saxutils import escape
from typing import Any, Dict, List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.orm import Session

from salesorder.exceptions import NotFoundError, ValidationFailed, Violation
from salesorder.models import Order, OrderStatus, PurchaseOrder, ORDER_STATUS_LABELS, PRICE_TYPE_LABELS
from salesorder.models.enums import PriceType
from salesorder.models.records import Actor
from salesorder.services.permission_service import Permission, require_permission
from salesorder.utils.formatters import date_id, datetime_id, money_idr, num_id

logger = logging.getLogger(__name__)

# Orders in these statuses can have a purchase order
PO_STATUSES = (OrderStatus.DISETUJUI, OrderStatus.TERKIRIM)


def company_info_from_config(config) -> Dict[str, Any]:
    """Company header fields from the Flask config."""
    return {
        'name': config.get('COMPANY_NAME'),
        'address': config.get('COMPANY_ADDRESS'),
        'phone': config.get('COMPANY_PHONE'),
        'email': config.get('COMPANY_EMAIL'),
    }


# Palette and layout of the PO document
INK = colors.HexColor('#1F2D3D')
MUTED = colors.HexColor('#6B7785')
ACCENT = colors.HexColor('#1E6F5C')
RULE = colors.HexColor('#C9D1D9')
STRIPE = colors.HexColor('#F2F5F7')
ITEM_COLUMNS = ('Produk', 'Tipe Harga', 'Jumlah', 'Harga Satuan', 'Diskon', 'Total')
ITEM_WIDTHS = (2.4 * inch, 0.9 * inch, 0.6 * inch, 1.1 * inch, 1 * inch, 1.1 * inch)


def _styles() -> Dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()['Normal']
    return {
        'title': ParagraphStyle('POTitle', parent=base, fontName='Helvetica-Bold', fontSize=20,
                                leading=24, textColor=ACCENT, alignment=TA_CENTER, spaceAfter=10),
        'company': ParagraphStyle('POCompany', parent=base, fontSize=10, textColor=MUTED,
                                  alignment=TA_CENTER, spaceAfter=4),
        'cell': ParagraphStyle('POCell', parent=base, fontSize=9, leading=11),
        'note': ParagraphStyle('PONote', parent=base, fontSize=9, textColor=MUTED, alignment=TA_CENTER),
    }


def _company_lines(company_info: Dict[str, Any]) -> List[str]:
    lines = []
    if company_info.get('name'):
        lines.append(f"<b>{escape(company_info['name'])}</b>")
    if company_info.get('address'):
        lines.append(escape(company_info['address']))
    contact = ' | '.join(
        f'{label}: {escape(company_info[key])}'
        for key, label in (('phone', 'Telp'), ('email', 'Email'))
        if company_info.get(key)
    )
    if contact:
        lines.append(contact)
    return lines


def _order_facts(order: Order, generated_at: datetime) -> List[List[str]]:
    facts = [
        ['No. Order', order.order_number],
        ['Tanggal Order', date_id(order.order_date)],
        ['Status', ORDER_STATUS_LABELS.get(OrderStatus(order.status), order.status)],
        ['Toko', order.store_id or '-'],
    ]
    if order.delivery_date:
        facts.append(['Tanggal Kirim', date_id(order.delivery_date)])
    facts.append(['Dicetak', datetime_id(generated_at)])
    return facts


def _item_rows(order: Order, cell_style: ParagraphStyle) -> List[list]:
    """One table row per order line; CUSTOM lines show their reason under the name."""
    rows = []
    for item in order.items:
        name = escape(item.product.name if item.product else item.product_id)
        if item.price_type == PriceType.CUSTOM.value and item.custom_price_reason:
            name += f"<br/><i>{escape(item.custom_price_reason)}</i>"
        rows.append([
            Paragraph(name, cell_style),
            PRICE_TYPE_LABELS.get(PriceType(item.price_type), item.price_type),
            num_id(item.quantity),
            money_idr(item.unit_price),
            money_idr(item.item_discount),
            money_idr(item.final_price),
        ])
    return rows


def _total_rows(order: Order) -> List[List[str]]:
    rows = [['Subtotal', money_idr(order.subtotal)]]
    if order.order_discount:
        label = 'Diskon Order'
        if order.order_discount_description:
            label += f' ({order.order_discount_description})'
        rows.append([label, f'- {money_idr(order.order_discount)}'])
    rows.append(['TOTAL', money_idr(order.total)])
    return rows


def _render_purchase_order_pdf(order: Order, company_info: Dict[str, Any],
                               generated_at: datetime) -> BytesIO:
    """Render the purchase order PDF into memory."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=order.order_number,
                            leftMargin=0.6 * inch, rightMargin=0.6 * inch,
                            topMargin=0.75 * inch, bottomMargin=0.75 * inch)
    styles = _styles()

    elements = [Paragraph('PURCHASE ORDER', styles['title'])]
    elements.extend(Paragraph(line, styles['company']) for line in _company_lines(company_info))
    elements.append(Spacer(1, 0.25 * inch))

    facts = Table(_order_facts(order, generated_at), colWidths=[1.6 * inch, 3.6 * inch], hAlign='LEFT')
    facts.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), INK),
        ('LINEBELOW', (0, -1), (-1, -1), 0.5, RULE),
    ]))
    elements += [facts, Spacer(1, 0.25 * inch)]

    items = Table([list(ITEM_COLUMNS)] + _item_rows(order, styles['cell']),
                  colWidths=ITEM_WIDTHS, repeatRows=1)
    items.setStyle(TableStyle([
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('BACKGROUND', (0, 0), (-1, 0), ACCENT),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, STRIPE]),
        ('LINEBELOW', (0, 0), (-1, -1), 0.5, RULE),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('ALIGN', (2, 0), (-1, -1), 'RIGHT'),
    ]))
    elements += [items, Spacer(1, 0.2 * inch)]

    totals = Table(_total_rows(order), colWidths=[5.4 * inch, 1.7 * inch])
    totals.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('TEXTCOLOR', (0, -1), (-1, -1), ACCENT),
        ('LINEABOVE', (0, -1), (-1, -1), 1, ACCENT),
    ]))
    elements += [totals, Spacer(1, 0.4 * inch)]

    if order.notes:
        elements.append(Paragraph(f"<b>Catatan:</b> {escape(order.notes)}", styles['note']))
        elements.append(Spacer(1, 0.15 * inch))
    elements.append(Paragraph('<i>Dokumen ini dibuat otomatis oleh sistem.</i>', styles['note']))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def generate_purchase_order(session: Session, order_id: str, actor: Actor,
                            company_info: Optional[Dict[str, Any]] = None,
                            now: Optional[datetime] = None) -> Tuple[PurchaseOrder, BytesIO]:
    """
    Render the purchase order of an approved order and record it.

    Storing the file is up to the caller; file_url stays empty until then.

    Returns:
        (purchase_orders row, PDF buffer)

    Raises:
        PermissionDenied: missing order:generate-po
        NotFoundError: unknown order
        ValidationFailed: order not DISETUJUI or TERKIRIM
    """
    require_permission(actor, Permission.ORDER_GENERATE_PO)

    order = session.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f'Order {order_id} tidak ditemukan')

    if OrderStatus(order.status) not in PO_STATUSES:
        raise ValidationFailed(
            [Violation(('status',), 'Purchase order hanya bisa dibuat untuk order yang sudah disetujui')]
        )

    now = now or datetime.now(timezone.utc)
    buffer = _render_purchase_order_pdf(order, company_info or {}, now)

    try:
        po = PurchaseOrder(
            order_number=order.order_number,
            generated_at=now,
            file_name=f"{order.order_number}.pdf",
            order_id=order.id,
            admin_id=actor.id,
        )
        session.add(po)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Purchase order {po.file_name} generated by user {actor.id}")
    return po, buffer
