"""
Integration tests for checkout: order numbers, placing orders and payment status.
"""

import pytest
from decimal import Decimal

from printshop import database
from printshop.models import Order, OrderItem, Invoice, InvoiceItem, GiftCard, CheckoutSession, PaymentStatus
from printshop.exceptions import BusinessLogicError, ConflictError
from printshop.services import checkout_service
from printshop.services.checkout_service import get_or_create_order_number, place_order
from printshop.services.order_service import update_order_payment_status, mark_order_paid


CART = [
    {'product_id': 'p1', 'name': 'Maceta', 'price': '100.00', 'quantity': 1, 'tax_enabled': True},
    {'name': 'Tarjeta Regalo', 'price': '50.00', 'quantity': 1, 'is_gift_card': True,
     'gift_card_code': 'NEW-GIFT-50', 'gift_card_recipient': 'luis@example.com', 'gift_card_sender': 'Ana'},
]


class TestOrderNumbers:
    """Tests for checkout session order numbers."""

    def test_same_number_for_same_session(self, session):
        first = get_or_create_order_number(session, 'cs_123')
        second = get_or_create_order_number(session, 'cs_123')

        assert first == second
        assert session.query(CheckoutSession).count() == 1

    def test_different_sessions_different_numbers(self, session, monkeypatch):
        numbers = iter(['A1B2C3', 'D4E5F6'])
        monkeypatch.setattr(checkout_service, 'generate_order_number', lambda: next(numbers))

        assert get_or_create_order_number(session, 'cs_1') == 'A1B2C3'
        assert get_or_create_order_number(session, 'cs_2') == 'D4E5F6'

    def test_session_registered_by_someone_else_is_read(self, session, monkeypatch):
        """Insert loses on the primary key: the stored number is returned."""
        other = database.new_session()
        other.add(CheckoutSession(session_id='cs_race', order_number='Z9Z9Z9'))
        other.commit()
        other.close()

        real_query = session.query
        calls = {'n': 0}

        def query_missing_first(*args, **kwargs):
            calls['n'] += 1
            q = real_query(*args, **kwargs)
            if calls['n'] == 1:
                return q.filter(CheckoutSession.session_id == '__none__')
            return q

        monkeypatch.setattr(session, 'query', query_missing_first)

        assert get_or_create_order_number(session, 'cs_race') == 'Z9Z9Z9'

    def test_missing_session_id(self, session):
        with pytest.raises(BusinessLogicError):
            get_or_create_order_number(session, '')


class TestPlaceOrder:
    """Tests for place_order."""

    def test_totals_items_and_invoice(self, session, settings, customer):
        order = place_order(
            session, CART + [dict(CART[0], quantity=2)], settings,
            user_id=customer.id, tax_rate=Decimal('0.21'),
            coupon_discount=Decimal('30'), coupon_code='VERANO'
        )

        # subtotal 350, taxable 300, coupon on taxable 30*300/350
        assert order.subtotal == Decimal('350.00')
        assert order.tax == Decimal('57.60')
        assert order.total == Decimal('377.60')
        assert order.payment_status == PaymentStatus.PENDING.value

        items = session.query(OrderItem).filter_by(order_id=order.id).all()
        assert sorted(i.quantity for i in items) == [1, 3]

        invoice = session.query(Invoice).filter_by(order_id=order.id).one()
        assert invoice.invoice_number == 'FAC-000001'
        assert invoice.total == Decimal('377.60')
        lines = {i.product_name: i.tax_enabled for i in session.query(InvoiceItem).filter_by(invoice_id=invoice.id)}
        assert lines == {'Maceta': True, 'Tarjeta Regalo': False}

        assert 'Cupón aplicado: VERANO' in order.notes
        assert 'Para: luis@example.com' in order.notes

    def test_gift_card_pays_part(self, session, settings, gift_card):
        cart = [{'product_id': 'p1', 'name': 'Lámpara', 'price': '150.00', 'quantity': 1}]

        order = place_order(session, cart, settings, tax_rate=Decimal('0'), gift_card_code=gift_card.code)

        assert order.discount == Decimal('100.00')
        assert order.total == Decimal('50.00')
        assert order.payment_status == PaymentStatus.PENDING.value
        session.refresh(gift_card)
        assert gift_card.current_balance == Decimal('0.00')

        invoice = session.query(Invoice).filter_by(order_id=order.id).one()
        assert invoice.gift_card_code == gift_card.code
        assert invoice.gift_card_amount == Decimal('100.00')

    def test_gift_card_pays_everything(self, session, settings, gift_card):
        cart = [{'product_id': 'p1', 'name': 'Figura', 'price': '20.00', 'quantity': 2}]

        order = place_order(
            session, cart, settings, tax_rate=Decimal('0.21'),
            shipping_cost=Decimal('5'), gift_card_code=gift_card.code
        )

        # 40 + 8.40 tax + 5 shipping
        assert order.discount == Decimal('53.40')
        assert order.total == Decimal('0.00')
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.payment_method == 'gift_card'
        session.refresh(gift_card)
        assert gift_card.current_balance == Decimal('46.60')

        invoice = session.query(Invoice).filter_by(order_id=order.id).one()
        assert invoice.payment_status == PaymentStatus.PAID.value
        assert invoice.paid_at is not None

    def test_empty_cart_rejected(self, session, settings):
        with pytest.raises(BusinessLogicError):
            place_order(session, [], settings)

    @pytest.mark.parametrize('line', [
        {'quantity': -1},
        {'quantity': 0},
        {'quantity': 'abc'},
        {'quantity': 1.5},
        {'price': '-10.00'},
        {'price': 'gratis'},
        {'price': None},
    ])
    def test_invalid_line_rejected(self, session, settings, gift_card, line):
        cart = [
            {'product_id': 'p1', 'name': 'Maceta', 'price': '100.00', 'quantity': 1},
            dict({'product_id': 'p2', 'name': 'Jarrón', 'price': '100.00', 'quantity': 1}, **line),
        ]

        with pytest.raises(BusinessLogicError):
            place_order(session, cart, settings, gift_card_code=gift_card.code)

        session.refresh(gift_card)
        assert gift_card.current_balance == Decimal('100.00')
        assert session.query(Order).count() == 0
        assert session.query(OrderItem).count() == 0

    def test_quantity_as_digit_string(self, session, settings):
        cart = [{'product_id': 'p1', 'name': 'Figura', 'price': '30.00', 'quantity': '2'}]

        order = place_order(session, cart, settings)

        assert order.total == Decimal('60.00')
        assert session.query(OrderItem).one().quantity == 2

    def test_failed_insert_gives_gift_card_money_back(self, session, settings, gift_card, monkeypatch):
        def broken_items(sess, drafts):
            raise RuntimeError('disk full')

        monkeypatch.setattr(checkout_service, 'add_order_items', broken_items)
        cart = [{'product_id': 'p1', 'name': 'Figura', 'price': '30.00', 'quantity': 1}]

        with pytest.raises(RuntimeError):
            place_order(session, cart, settings, gift_card_code=gift_card.code)

        session.refresh(gift_card)
        assert gift_card.current_balance == Decimal('100.00')
        assert session.query(Order).count() == 0

    def test_same_checkout_session_twice(self, session, settings, gift_card):
        cart = [{'product_id': 'p1', 'name': 'Figura', 'price': '30.00', 'quantity': 1}]
        place_order(session, cart, settings, checkout_session_id='cs_dup')

        with pytest.raises(ConflictError):
            place_order(session, cart, settings, checkout_session_id='cs_dup', gift_card_code=gift_card.code)

        session.refresh(gift_card)
        assert gift_card.current_balance == Decimal('100.00')
        assert session.query(Order).count() == 1


class TestPaymentStatus:
    """Tests for order payment status transitions."""

    def test_paid_is_mirrored_on_invoice(self, session, settings):
        cart = [{'product_id': 'p1', 'name': 'Figura', 'price': '30.00', 'quantity': 1}]
        order = place_order(session, cart, settings)

        mark_order_paid(session, order.id)

        invoice = session.query(Invoice).filter_by(order_id=order.id).one()
        assert invoice.payment_status == PaymentStatus.PAID.value
        assert invoice.paid_at is not None

    def test_refunded_is_terminal(self, session, settings):
        cart = [{'product_id': 'p1', 'name': 'Figura', 'price': '30.00', 'quantity': 1}]
        order = place_order(session, cart, settings)
        mark_order_paid(session, order.id)
        update_order_payment_status(session, order.id, 'refunded')

        with pytest.raises(BusinessLogicError):
            update_order_payment_status(session, order.id, 'pending')

    def test_pending_cannot_be_refunded(self, session, settings):
        cart = [{'product_id': 'p1', 'name': 'Figura', 'price': '30.00', 'quantity': 1}]
        order = place_order(session, cart, settings)

        with pytest.raises(BusinessLogicError):
            update_order_payment_status(session, order.id, 'refunded')

    def test_unknown_status(self, session, settings):
        cart = [{'product_id': 'p1', 'name': 'Figura', 'price': '30.00', 'quantity': 1}]
        order = place_order(session, cart, settings)

        with pytest.raises(BusinessLogicError):
            update_order_payment_status(session, order.id, 'shipped')
