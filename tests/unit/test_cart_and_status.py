"""
Unit tests for cart consolidation, quote status labels and order numbers.
"""

import re
import pytest
from decimal import Decimal
from printshop.models import QuoteStatus, quote_marker
from printshop.services.cart_service import consolidate_cart_lines
from printshop.services.checkout_service import generate_order_number, generate_order_notes


class TestConsolidateCartLines:
    """Tests for consolidate_cart_lines."""

    def test_same_configuration_merges(self):
        lines = [
            {'product_id': 'p1', 'name': 'Llavero', 'price': 10, 'quantity': 2, 'material_id': 'pla', 'color_id': 'red'},
            {'product_id': 'p1', 'name': 'Llavero', 'price': 10, 'quantity': 3, 'material_id': 'pla', 'color_id': 'red'},
        ]

        drafts = consolidate_cart_lines(lines, 'order-1')

        assert len(drafts) == 1
        assert drafts[0]['quantity'] == 5
        assert drafts[0]['total_price'] == Decimal('50.00')
        assert drafts[0]['order_id'] == 'order-1'

    def test_different_color_kept_apart(self):
        lines = [
            {'product_id': 'p1', 'name': 'Llavero', 'price': 10, 'quantity': 1, 'color_id': 'red'},
            {'product_id': 'p1', 'name': 'Llavero', 'price': 10, 'quantity': 1, 'color_id': 'blue'},
        ]

        drafts = consolidate_cart_lines(lines, 'order-1')

        assert [d['selected_color'] for d in drafts] == ['red', 'blue']

    def test_customizations_compared_by_content(self):
        lines = [
            {'product_id': 'p1', 'name': 'Placa', 'price': 5, 'quantity': 1,
             'customization_selections': [{'section': 'texto', 'value': 'Hola', 'color': 'negro'}]},
            {'product_id': 'p1', 'name': 'Placa', 'price': 5, 'quantity': 1,
             'customization_selections': [{'color': 'negro', 'value': 'Hola', 'section': 'texto'}]},
            {'product_id': 'p1', 'name': 'Placa', 'price': 5, 'quantity': 1,
             'customization_selections': [{'section': 'texto', 'value': 'Adiós', 'color': 'negro'}]},
        ]

        drafts = consolidate_cart_lines(lines, None)

        assert [d['quantity'] for d in drafts] == [2, 1]

    def test_gift_card_lines_have_no_product(self):
        lines = [
            {'product_id': 'gc-1', 'name': 'Tarjeta Regalo', 'price': 25, 'quantity': 1, 'is_gift_card': True},
            {'product_id': 'gc-2', 'name': 'Tarjeta Regalo', 'price': 25, 'quantity': 1, 'is_gift_card': True},
        ]

        drafts = consolidate_cart_lines(lines, 'order-1')

        assert len(drafts) == 1
        assert drafts[0]['product_id'] is None
        assert drafts[0]['quantity'] == 2

    def test_first_seen_order_preserved(self):
        lines = [
            {'product_id': 'b', 'name': 'B', 'price': 1, 'quantity': 1},
            {'product_id': 'a', 'name': 'A', 'price': 1, 'quantity': 1},
            {'product_id': 'b', 'name': 'B', 'price': 1, 'quantity': 1},
        ]

        drafts = consolidate_cart_lines(lines, 'order-1')

        assert [d['product_id'] for d in drafts] == ['b', 'a']

    def test_empty_cart(self):
        assert consolidate_cart_lines([], 'order-1') == []


class TestQuoteStatus:
    """Tests for QuoteStatus.from_label."""

    @pytest.mark.parametrize('label', ['approved', 'Aprobado', 'APROBADA', '  aprobada '])
    def test_approved_labels(self, label):
        assert QuoteStatus.from_label(label) is QuoteStatus.APPROVED

    def test_slug_wins(self):
        assert QuoteStatus.from_label('Aceptada por cliente', 'approved') is QuoteStatus.APPROVED

    def test_other_labels(self):
        assert QuoteStatus.from_label('pending') is QuoteStatus.PENDING
        assert QuoteStatus.from_label('Rechazada') is QuoteStatus.OTHER
        assert QuoteStatus.from_label(None) is QuoteStatus.OTHER

    def test_quote_marker(self):
        assert quote_marker('abc') == 'quote_id:abc'


class TestOrderNumbers:
    """Tests for order number and notes generation."""

    def test_format(self):
        for _ in range(20):
            assert re.fullmatch(r'([A-Z][0-9]){3}', generate_order_number())

    def test_notes(self):
        lines = [{
            'name': 'Tarjeta Regalo', 'price': 25, 'quantity': 1, 'is_gift_card': True,
            'gift_card_code': 'ABCD-1234', 'gift_card_recipient': 'luis@example.com',
            'gift_card_sender': 'Ana', 'gift_card_message': '¡Felicidades!',
        }]
        redemption = {'code': 'GIFT-1', 'amount_applied': Decimal('12.5')}

        notes = generate_order_notes(lines, redemption, 'VERANO', Decimal('5'))

        assert 'Tarjeta de regalo aplicada: GIFT-1 (-€12.50)' in notes
        assert 'Cupón aplicado: VERANO (-€5.00)' in notes
        assert 'Para: luis@example.com' in notes
        assert 'Mensaje: ¡Felicidades!' in notes

    def test_no_notes(self):
        assert generate_order_notes([{'name': 'X', 'price': 1, 'quantity': 1}]) is None
