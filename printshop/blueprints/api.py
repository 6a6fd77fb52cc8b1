"""JSON API blueprint - quote approval, gift cards, checkout and invoices."""
from flask import Blueprint, request, current_app, g, jsonify, send_file
from printshop.database import get_session
from printshop.models import GiftCard, Invoice
from printshop.exceptions import (
    ShopError, BusinessLogicError, NotFoundError, UnauthenticatedError, UnauthorizedError, ConflictError
)
from printshop.middleware import require_api_user, require_admin
from printshop.settings import PipelineSettings
from printshop.services.pricing_service import to_money, resolve_tax_rate
from printshop.services.gift_card_service import redeem_gift_card, set_balance_admin
from printshop.services.checkout_service import get_or_create_order_number, place_order
from printshop.services.order_service import update_order_payment_status
from printshop.services.invoice_service import render_invoice_pdf
from printshop.services.quote_approval_service import process_quote_approval
from printshop.blueprints.metrics import quote_approvals_total, gift_card_redemptions_total

api_bp = Blueprint('api', __name__, url_prefix='/api')


def _settings() -> PipelineSettings:
    return PipelineSettings.from_config(current_app.config)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BusinessLogicError('Se esperaba un cuerpo JSON')
    return data


def _amount(data: dict, key: str, required: bool = True):
    if data.get(key) is None:
        if required:
            raise BusinessLogicError(f'Falta el campo {key}')
        return None
    try:
        return to_money(data[key])
    except ValueError:
        raise BusinessLogicError(f'Importe inválido en {key}')


def _gift_card_json(card: GiftCard) -> dict:
    return {
        'id': card.id,
        'code': card.code,
        'current_balance': to_money(card.current_balance),
        'is_active': card.is_active,
    }


@api_bp.route('/quotes/approval', methods=['POST'])
@require_api_user
def approve_quote():
    """Issue invoice and order for a quote whose status changed."""
    db_session = get_session()
    event = _json_body()

    try:
        result = process_quote_approval(db_session, event, g.user, _settings())
    except (UnauthenticatedError, UnauthorizedError):
        quote_approvals_total.labels(outcome='forbidden').inc()
        raise
    except NotFoundError:
        quote_approvals_total.labels(outcome='not_found').inc()
        raise
    except ShopError:
        quote_approvals_total.labels(outcome='failed').inc()
        raise

    if result['invoice'] is None:
        outcome = 'ignored'
    elif result['automations']['invoice_created']:
        outcome = 'issued'
    else:
        outcome = 'replayed'
    quote_approvals_total.labels(outcome=outcome).inc()

    return jsonify(result)


@api_bp.route('/gift-cards/redeem', methods=['POST'])
@require_api_user
def redeem():
    """Deduct up to `amount` from the gift card `code`."""
    db_session = get_session()
    data = _json_body()
    amount = _amount(data, 'amount')

    try:
        redemption = redeem_gift_card(
            db_session, data.get('code'), amount, max_attempts=_settings().gift_card_max_attempts
        )
    except ConflictError:
        gift_card_redemptions_total.labels(outcome='conflict').inc()
        raise
    except (BusinessLogicError, NotFoundError):
        gift_card_redemptions_total.labels(outcome='rejected').inc()
        raise
    except ShopError:
        gift_card_redemptions_total.labels(outcome='failed').inc()
        raise

    gift_card_redemptions_total.labels(outcome='redeemed').inc()
    return jsonify({'status': 'success', **redemption})


@api_bp.route('/gift-cards/<card_id>/balance', methods=['PUT'])
@require_admin
def set_gift_card_balance(card_id):
    """Admin balance correction; expected_balance makes it conditional."""
    db_session = get_session()
    data = _json_body()

    card = set_balance_admin(
        db_session,
        card_id,
        _amount(data, 'balance'),
        expected_current_balance=_amount(data, 'expected_balance', required=False),
    )
    current_app.logger.info(f"[GIFT CARD] Admin {g.user.email} set balance of {card.code}")
    return jsonify({'status': 'success', 'gift_card': _gift_card_json(card)})


@api_bp.route('/checkout/order-number', methods=['POST'])
@require_api_user
def checkout_order_number():
    """Stable order number for a checkout session."""
    data = _json_body()
    order_number = get_or_create_order_number(get_session(), data.get('checkout_session_id'))
    return jsonify({'status': 'success', 'order_number': order_number})


@api_bp.route('/checkout/orders', methods=['POST'])
@require_api_user
def checkout_place_order():
    """Place an order for the caller's cart."""
    db_session = get_session()
    data = _json_body()
    settings = _settings()

    cart = data.get('items')
    if not isinstance(cart, list):
        raise BusinessLogicError('El carrito está vacío')

    order = place_order(
        db_session,
        cart,
        settings,
        user_id=g.user.id,
        checkout_session_id=data.get('checkout_session_id'),
        tax_rate=resolve_tax_rate(db_session, settings),
        shipping_cost=_amount(data, 'shipping_cost', required=False) or 0,
        coupon_discount=_amount(data, 'coupon_discount', required=False) or 0,
        coupon_code=data.get('coupon_code'),
        gift_card_code=data.get('gift_card_code'),
        shipping_address=data.get('shipping_address'),
        notes=data.get('notes'),
        payment_method=data.get('payment_method'),
    )

    return jsonify({
        'status': 'success',
        'order': {
            'id': order.id,
            'order_number': order.order_number,
            'subtotal': to_money(order.subtotal),
            'tax': to_money(order.tax),
            'shipping': to_money(order.shipping),
            'discount': to_money(order.discount),
            'total': to_money(order.total),
            'payment_status': order.payment_status,
        }
    }), 201


@api_bp.route('/orders/<order_id>/payment-status', methods=['PUT'])
@require_admin
def set_order_payment_status(order_id):
    """Admin payment status change (mirrored on the invoices once paid)."""
    data = _json_body()
    order = update_order_payment_status(get_session(), order_id, data.get('status'))
    return jsonify({'status': 'success', 'order': {'id': order.id, 'payment_status': order.payment_status}})


@api_bp.route('/invoices/<invoice_id>/pdf')
@require_api_user
def invoice_pdf(invoice_id):
    """Download an invoice as PDF (its owner or an admin)."""
    db_session = get_session()

    invoice = db_session.query(Invoice).filter(Invoice.id == invoice_id).first()
    if not invoice:
        raise NotFoundError('Factura no encontrada')
    if not g.user.is_admin and invoice.user_id != g.user.id:
        raise UnauthorizedError()

    pdf_buffer = render_invoice_pdf(invoice, _settings())
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"factura_{invoice.invoice_number}.pdf"
    )
