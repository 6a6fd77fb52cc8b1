"""Invoice service - numbering, creation and PDF rendering."""
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER, TA_RIGHT

from markupsafe import escape
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from printshop.models import (
    Invoice, InvoiceItem, Order, Quote, DocumentSequence, INVOICE_SEQUENCE, PaymentStatus
)
from printshop.exceptions import InvoiceNumberAllocationError
from printshop.services.pricing_service import to_money, is_taxable_line
from printshop.utils.formatters import money_eur, date_eu

logger = logging.getLogger(__name__)


def format_invoice_number(prefix: str, value: int) -> str:
    return f"{prefix}{value:06d}"


def allocate_invoice_number(session, prefix: str = 'FAC-', max_attempts: int = 5) -> str:
    """
    Take the next invoice number from document_sequence.

    The counter is advanced with UPDATE ... WHERE last_value = <read value>,
    so two allocators can never return the same number. The allocation is
    committed on its own; a later failure leaves a gap, never a duplicate.

    Raises:
        InvoiceNumberAllocationError: database failure or too much contention
    """
    try:
        for _ in range(max_attempts):
            seq = session.query(DocumentSequence).filter(DocumentSequence.name == INVOICE_SEQUENCE).first()

            if seq is None:
                try:
                    session.add(DocumentSequence(name=INVOICE_SEQUENCE, last_value=1))
                    session.commit()
                    return format_invoice_number(prefix, 1)
                except IntegrityError:
                    # Another allocator created the row first
                    session.rollback()
                    continue

            current = seq.last_value
            result = session.execute(
                update(DocumentSequence)
                .where(DocumentSequence.name == INVOICE_SEQUENCE, DocumentSequence.last_value == current)
                .values(last_value=current + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                session.commit()
                return format_invoice_number(prefix, current + 1)

            session.rollback()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[INVOICE] ✗ Error generating invoice number: {e}")
        raise InvoiceNumberAllocationError()

    logger.error(f"[INVOICE] ✗ Invoice number contention after {max_attempts} attempts")
    raise InvoiceNumberAllocationError()


def find_invoice_for_quote(session, quote_id: str) -> Optional[Invoice]:
    return session.query(Invoice).filter(Invoice.quote_id == quote_id).first()


def create_invoice_for_quote(
    session,
    quote: Quote,
    order: Optional[Order],
    totals: Dict[str, Decimal],
    settings,
) -> Invoice:
    """
    Create the invoice (and its single line) for an approved quote.

    Steps:
    1. Allocate the invoice number (fatal on failure)
    2. Insert invoice linked to quote and order (order may be None)
    3. Insert the invoice item carrying the quote's tax flag
    4. Commit

    Raises:
        InvoiceNumberAllocationError: no number could be allocated
        IntegrityError: another run already created the invoice for this quote
    """
    invoice_number = allocate_invoice_number(session, settings.invoice_number_prefix)
    logger.info(f"[INVOICE] Generated invoice number: {invoice_number}")

    issue_date = datetime.now(timezone.utc)
    invoice = Invoice(
        invoice_number=invoice_number,
        quote_id=quote.id,
        order_id=order.id if order else None,
        user_id=quote.user_id,
        issue_date=issue_date,
        due_date=issue_date + timedelta(days=settings.invoice_due_days),
        payment_status=PaymentStatus.PENDING.value,
        subtotal=totals['subtotal'],
        tax=totals['tax'],
        shipping=totals['shipping'],
        discount=totals['discount'],
        total=totals['total'],
        notes=f'Factura generada automáticamente para cotización {quote.quote_type}',
    )

    try:
        session.add(invoice)
        session.flush()

        session.add(InvoiceItem(
            invoice_id=invoice.id,
            product_name=f'Cotización {quote.quote_type}',
            description=quote.description or 'Servicio de impresión 3D',
            quantity=1,
            unit_price=totals['subtotal'],
            total_price=totals['subtotal'],
            tax_enabled=quote.is_taxable,
        ))
        session.commit()
    except IntegrityError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        raise

    return invoice


def create_invoice_for_order(
    session,
    order: Order,
    lines: List[Dict[str, Any]],
    settings,
    gift_card: Optional[Dict[str, Any]] = None,
) -> Invoice:
    """
    Create the invoice for a checkout order, one item per consolidated line.

    lines are the cart lines the order was built from; they decide which
    invoice items are tax exempt.
    """
    exempt_keys = {
        (line.get('name') or 'Producto', None if line.get('is_gift_card') else line.get('product_id'))
        for line in lines if not is_taxable_line(line)
    }

    invoice_number = allocate_invoice_number(session, settings.invoice_number_prefix)
    issue_date = datetime.now(timezone.utc)
    is_paid = order.payment_status == PaymentStatus.PAID.value

    try:
        invoice = Invoice(
            invoice_number=invoice_number,
            order_id=order.id,
            user_id=order.user_id,
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=settings.invoice_due_days),
            payment_status=order.payment_status,
            paid_at=issue_date if is_paid else None,
            subtotal=order.subtotal,
            tax=order.tax,
            shipping=order.shipping,
            discount=order.discount,
            total=order.total,
            gift_card_code=gift_card['code'] if gift_card else None,
            gift_card_amount=gift_card['amount_applied'] if gift_card else None,
            notes=order.notes,
        )
        session.add(invoice)
        session.flush()

        for item in order.items:
            session.add(InvoiceItem(
                invoice_id=invoice.id,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
                tax_enabled=(item.product_name, item.product_id) not in exempt_keys,
            ))
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[INVOICE] ✓ Invoice {invoice_number} created for order {order.order_number}")
    return invoice


def mirror_order_payment_status(session, order: Order) -> int:
    """
    Copy a paid/refunded order status onto its invoices (no commit).

    Returns the number of invoices touched.
    """
    if order.payment_status not in (PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value):
        return 0

    invoices = session.query(Invoice).filter(Invoice.order_id == order.id).all()
    now = datetime.now(timezone.utc)
    for invoice in invoices:
        invoice.payment_status = order.payment_status
        if order.payment_status == PaymentStatus.PAID.value and invoice.paid_at is None:
            invoice.paid_at = now
    return len(invoices)


def render_invoice_pdf(invoice: Invoice, settings) -> BytesIO:
    """Render an invoice as an A4 PDF."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'InvoiceTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=colors.HexColor('#1E3A8A'),
        spaceAfter=10,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )
    company_style = ParagraphStyle(
        'InvoiceCompany',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#6B7280'),
        alignment=TA_CENTER,
        spaceAfter=4
    )

    # 1. Company header
    elements.append(Paragraph("FACTURA", title_style))
    elements.append(Paragraph(f"<b>{escape(settings.company_name)}</b>", company_style))
    if settings.company_address:
        elements.append(Paragraph(str(escape(settings.company_address)), company_style))
    if settings.company_email:
        elements.append(Paragraph(f"Email: {escape(settings.company_email)}", company_style))
    elements.append(Spacer(1, 0.3*inch))

    # 2. Invoice metadata
    meta = [
        ['Factura N°:', invoice.invoice_number],
        ['Fecha Emisión:', date_eu(invoice.issue_date)],
    ]
    if invoice.due_date:
        meta.append(['Vencimiento:', date_eu(invoice.due_date)])
    meta.append(['Estado de Pago:', invoice.payment_status.upper()])
    if invoice.order is not None:
        meta.append(['Pedido:', invoice.order.order_number])
    if invoice.quote is not None:
        meta.append(['Cliente:', invoice.quote.customer_name])
    elif invoice.user is not None:
        meta.append(['Cliente:', invoice.user.full_name or invoice.user.email])

    meta_table = Table(meta, colWidths=[2*inch, 3.5*inch])
    meta_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#374151')),
    ]))
    elements.append(meta_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Items
    rows = [['Concepto', 'Cant.', 'Precio Unit.', 'IVA', 'Importe']]
    for item in invoice.items:
        rows.append([
            item.product_name,
            str(item.quantity),
            money_eur(item.unit_price),
            'Sí' if item.tax_enabled else 'Exento',
            money_eur(item.total_price),
        ])

    items_table = Table(rows, colWidths=[3*inch, 0.6*inch, 1.1*inch, 0.7*inch, 1.1*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1E3A8A')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 10),
        ('ALIGN', (1, 1), (1, -1), 'CENTER'),
        ('ALIGN', (2, 1), (2, -1), 'RIGHT'),
        ('ALIGN', (3, 1), (3, -1), 'CENTER'),
        ('ALIGN', (4, 1), (4, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#D1D5DB')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#F3F4F6')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals
    totals = [
        ['Subtotal:', money_eur(invoice.subtotal)],
        ['IVA:', money_eur(invoice.tax)],
    ]
    if to_money(invoice.shipping) > 0:
        totals.append(['Envío:', money_eur(invoice.shipping)])
    if to_money(invoice.discount) > 0:
        totals.append(['Descuento:', f"-{money_eur(invoice.discount)}"])
    totals.append(['TOTAL:', money_eur(invoice.total)])

    totals_table = Table(totals, colWidths=[5.4*inch, 1.1*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, -1), (-1, -1), 13),
        ('TEXTCOLOR', (0, -1), (-1, -1), colors.HexColor('#047857')),
        ('LINEABOVE', (0, -1), (-1, -1), 1, colors.HexColor('#047857')),
    ]))
    elements.append(totals_table)
    elements.append(Spacer(1, 0.4*inch))

    footer_style = ParagraphStyle('InvoiceFooter', parent=styles['Normal'], fontSize=9, textColor=colors.HexColor('#9CA3AF'), alignment=TA_RIGHT)
    if invoice.notes:
        elements.append(Paragraph(f"<b>Notas:</b> {escape(invoice.notes)}".replace("\n", "<br/>"), footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer
