"""
Checkout service - order numbers and placing cart orders.

Gift card money is taken through redeem_gift_card only, and given back with
the same compare-and-swap update if the order cannot be stored.
"""
import logging
import secrets
import string
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from printshop.models import Order, CheckoutSession, PaymentStatus
from printshop.exceptions import BusinessLogicError, ConflictError
from printshop.services.pricing_service import calculate_order_totals, to_money
from printshop.services.cart_service import consolidate_cart_lines, add_order_items, validate_cart_lines
from printshop.services.gift_card_service import redeem_gift_card, update_balance
from printshop.services.invoice_service import create_invoice_for_order

logger = logging.getLogger(__name__)


def generate_order_number() -> str:
    """Three letter/digit pairs, e.g. X4H8S9."""
    return ''.join(
        secrets.choice(string.ascii_uppercase) + secrets.choice(string.digits)
        for _ in range(3)
    )


def get_or_create_order_number(session, checkout_session_id: str) -> str:
    """
    Order number bound to a checkout session.

    The first call stores a fresh number; later calls (page reloads, retries)
    get the same one back.
    """
    if not checkout_session_id:
        raise BusinessLogicError('Falta el identificador de la sesión de pago')

    existing = session.query(CheckoutSession).filter(
        CheckoutSession.session_id == checkout_session_id
    ).first()
    if existing:
        return existing.order_number

    try:
        row = CheckoutSession(session_id=checkout_session_id, order_number=generate_order_number())
        session.add(row)
        session.commit()
        return row.order_number
    except IntegrityError:
        # Same session registered concurrently (or number collision): read the winner
        session.rollback()
        existing = session.query(CheckoutSession).filter(
            CheckoutSession.session_id == checkout_session_id
        ).first()
        if existing:
            return existing.order_number
        raise


def generate_order_notes(
    lines: List[Dict[str, Any]],
    gift_card: Optional[Dict[str, Any]] = None,
    coupon_code: Optional[str] = None,
    coupon_discount=None,
) -> Optional[str]:
    """Human readable notes: gift card applied, coupon applied, gift card purchased."""
    notes = []

    if gift_card:
        notes.append(
            f"Tarjeta de regalo aplicada: {gift_card['code']} (-€{to_money(gift_card['amount_applied']):.2f})"
        )

    if coupon_code:
        notes.append(f"Cupón aplicado: {coupon_code} (-€{to_money(coupon_discount):.2f})")

    purchase = next((line for line in lines if line.get('is_gift_card')), None)
    if purchase:
        text = (
            f"Tarjeta Regalo: {purchase.get('gift_card_code') or ''}\n"
            f"Para: {purchase.get('gift_card_recipient') or ''}\n"
            f"De: {purchase.get('gift_card_sender') or ''}"
        )
        if purchase.get('gift_card_message'):
            text += f"\nMensaje: {purchase['gift_card_message']}"
        notes.append(text)

    return '\n\n'.join(notes) if notes else None


def _give_back(session, redemption: Dict[str, Any]) -> None:
    """Return redeemed gift card money after a failed order insert."""
    restored = update_balance(
        session,
        redemption['gift_card_id'],
        redemption['previous_balance'],
        expected_current_balance=redemption['new_balance'],
    )
    if restored:
        logger.info(f"[CHECKOUT] Gift card {redemption['code']} restored to {redemption['previous_balance']}")
    else:
        logger.error(
            f"[CHECKOUT] ✗ Could not restore gift card {redemption['code']}: balance changed since redemption"
        )


def place_order(
    session,
    cart: List[Dict[str, Any]],
    settings,
    user_id: Optional[str] = None,
    checkout_session_id: Optional[str] = None,
    tax_rate=Decimal('0'),
    shipping_cost=Decimal('0'),
    coupon_discount=Decimal('0'),
    coupon_code: Optional[str] = None,
    gift_card_code: Optional[str] = None,
    shipping_address: Optional[str] = None,
    notes: Optional[str] = None,
    payment_method: Optional[str] = None,
) -> Order:
    """
    Turn a cart into an order, its items and its invoice.

    Steps:
    1. Totals without gift card
    2. Redeem the gift card for (at most) that total
    3. Final totals with the redeemed amount as discount
    4. Insert order + consolidated items (paid when nothing is left to pay)
    5. Create the invoice (failure logged, the order stands)

    Raises:
        BusinessLogicError: empty cart, invalid line, invalid gift card
        ConflictError: gift card raced away, or the order was already placed
    """
    if not cart:
        raise BusinessLogicError('El carrito está vacío')
    validate_cart_lines(cart)

    pre_totals = calculate_order_totals(
        cart, tax_rate, coupon_discount=coupon_discount, shipping_cost=shipping_cost
    )

    redemption = None
    if gift_card_code and pre_totals['total'] > 0:
        redemption = redeem_gift_card(
            session, gift_card_code, pre_totals['total'], max_attempts=settings.gift_card_max_attempts
        )

    totals = calculate_order_totals(
        cart,
        tax_rate,
        gift_card_discount=redemption['amount_applied'] if redemption else 0,
        coupon_discount=coupon_discount,
        shipping_cost=shipping_cost,
    )

    if checkout_session_id:
        order_number = get_or_create_order_number(session, checkout_session_id)
    else:
        order_number = generate_order_number()

    is_paid = totals['total'] == 0
    generated_notes = generate_order_notes(cart, redemption, coupon_code, coupon_discount)
    order_notes = '\n\n'.join(n for n in (notes, generated_notes) if n) or None

    try:
        order = Order(
            order_number=order_number,
            user_id=user_id,
            subtotal=totals['subtotal'],
            tax=totals['tax'],
            shipping=totals['shipping'],
            discount=totals['discount'],
            total=totals['total'],
            payment_status=PaymentStatus.PAID.value if is_paid else PaymentStatus.PENDING.value,
            payment_method='gift_card' if is_paid and redemption else payment_method,
            shipping_address=shipping_address,
            billing_address=shipping_address,
            notes=order_notes,
        )
        session.add(order)
        session.flush()

        add_order_items(session, consolidate_cart_lines(cart, order.id))
        session.commit()
    except IntegrityError:
        session.rollback()
        if redemption:
            _give_back(session, redemption)
        logger.warning(f"[CHECKOUT] Order {order_number} already exists")
        raise ConflictError('Este pedido ya fue registrado', payload={'order_number': order_number})
    except Exception:
        session.rollback()
        if redemption:
            _give_back(session, redemption)
        raise

    logger.info(
        f"[CHECKOUT] ✓ Order {order.order_number} placed: total={totals['total']} "
        f"status={order.payment_status}"
    )

    try:
        create_invoice_for_order(session, order, cart, settings, gift_card=redemption)
    except Exception as e:
        logger.exception(f"[CHECKOUT] ✗ Invoice for order {order.order_number} failed: {e}")

    return order
