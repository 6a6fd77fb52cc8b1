"""Order service - orders generated from quotes and payment status changes."""
import logging
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError

from printshop.models import Order, OrderItem, Quote, PaymentStatus, PAYMENT_TRANSITIONS, quote_marker
from printshop.exceptions import BusinessLogicError, NotFoundError
from printshop.services.pricing_service import to_money
from printshop.services.checkout_service import generate_order_number
from printshop.services.invoice_service import mirror_order_payment_status

logger = logging.getLogger(__name__)


def find_order_for_quote(session, quote_id: str) -> Optional[Order]:
    """
    Order already generated for a quote.

    Looks at the quote_id column first. Rows written before that column
    existed only carry the marker in admin_notes; those get the column
    filled in on the way.
    """
    order = session.query(Order).filter(Order.quote_id == quote_id).first()
    if order:
        return order

    legacy = session.query(Order).filter(
        Order.quote_id.is_(None),
        Order.admin_notes.like(f"%{quote_marker(quote_id)}%")
    ).first()
    if not legacy:
        return None

    try:
        legacy.quote_id = quote_id
        session.commit()
        logger.info(f"[ORDER] Back-filled quote_id on legacy order {legacy.order_number}")
    except IntegrityError:
        # Another run linked a different order to this quote meanwhile
        session.rollback()
        return session.query(Order).filter(Order.quote_id == quote_id).first()

    return legacy


def create_order_for_quote(session, quote: Quote, totals: Dict[str, Decimal]) -> Order:
    """
    Create a pending order with a single line for an approved quote.

    The line carries the whole subtotal; unit_price is subtotal / quantity
    rounded to cents, so unit_price * quantity may differ from total_price
    by a cent.

    Raises:
        IntegrityError: an order for this quote already exists (caller re-reads)
    """
    quantity = quote.quantity if quote.quantity and quote.quantity > 0 else 1
    subtotal = to_money(totals['subtotal'])
    address = quote.full_address or None

    try:
        order = Order(
            order_number=generate_order_number(),
            user_id=quote.user_id,
            quote_id=quote.id,
            subtotal=subtotal,
            tax=totals['tax'],
            shipping=totals['shipping'],
            discount=totals['discount'],
            total=totals['total'],
            payment_status=PaymentStatus.PENDING.value,
            shipping_address=address,
            billing_address=address,
            notes=f"Pedido generado automáticamente desde cotización aprobada. {quote.description or ''}".strip(),
            admin_notes=f"Generado desde cotización {quote_marker(quote.id)}",
        )
        session.add(order)
        session.flush()

        session.add(OrderItem(
            order_id=order.id,
            product_name=f'Cotización {quote.quote_type}',
            quantity=quantity,
            unit_price=to_money(subtotal / quantity),
            total_price=subtotal,
            selected_material=quote.material_id,
            selected_color=quote.color_id,
            custom_text=quote.description,
        ))
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[ORDER] ✓ Order {order.order_number} created for quote {quote.id}")
    return order


def update_order_payment_status(session, order_id: str, new_status: str) -> Order:
    """
    Move an order to another payment status.

    Allowed: pending -> paid|failed, failed -> pending, paid -> refunded.
    Paid/refunded are copied to the order's invoices.
    """
    order = session.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError('Pedido no encontrado')

    try:
        new_status = PaymentStatus(new_status).value
    except ValueError:
        raise BusinessLogicError(f'Estado de pago desconocido: {new_status}')

    if new_status == order.payment_status:
        return order

    allowed = PAYMENT_TRANSITIONS.get(order.payment_status, set())
    if new_status not in allowed:
        raise BusinessLogicError(
            f'No se puede pasar un pedido de {order.payment_status} a {new_status}'
        )

    try:
        order.payment_status = new_status
        mirrored = mirror_order_payment_status(session, order)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[ORDER] Order {order.order_number} -> {new_status} ({mirrored} invoice(s) updated)")
    return order


def mark_order_paid(session, order_id: str) -> Order:
    return update_order_payment_status(session, order_id, PaymentStatus.PAID.value)
