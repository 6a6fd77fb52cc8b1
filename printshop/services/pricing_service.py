"""
Pricing service - order totals under coupon, gift card, tax and shipping rules.
Pure functions, no database access except resolve_tax_rate.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Iterable

from printshop.models import TaxSettings

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_money(value: Any) -> Decimal:
    """Coerce a price-like value (Decimal, float, str, None) to a 2-decimal Decimal."""
    if value is None or value == '':
        return ZERO
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f'Importe inválido: {value!r}')
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _round(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _line_amount(line: Dict[str, Any]) -> Decimal:
    return Decimal(str(line.get('price') or 0)) * Decimal(str(line.get('quantity') or 0))


def is_taxable_line(line: Dict[str, Any]) -> bool:
    """Gift card purchases and lines flagged tax_enabled=False are exempt."""
    if line.get('is_gift_card'):
        return False
    return line.get('tax_enabled', True) is not False


def calculate_order_totals(
    lines: Iterable[Dict[str, Any]],
    tax_rate=Decimal('0'),
    gift_card_discount=Decimal('0'),
    coupon_discount=Decimal('0'),
    shipping_cost=Decimal('0'),
) -> Dict[str, Decimal]:
    """
    Calculate subtotal, tax, shipping, discount and total for a cart.

    Args:
        lines: cart line dicts with price, quantity, tax_enabled, is_gift_card
        tax_rate: fraction (0.21 for 21%)
        gift_card_discount: amount paid by gift card (not capped by subtotal)
        coupon_discount: fixed coupon amount (capped at subtotal)
        shipping_cost: shipping charged

    The coupon is spread over taxable and exempt goods in proportion to their
    share of the subtotal, and only the taxable share reduces the tax base.
    """
    lines = list(lines)
    rate = max(Decimal(str(tax_rate or 0)), Decimal('0'))
    gift_card = max(to_money(gift_card_discount), ZERO)
    coupon = max(to_money(coupon_discount), ZERO)

    subtotal = _round(sum((_line_amount(line) for line in lines), Decimal('0')))
    if subtotal < 0:
        subtotal = ZERO

    capped_coupon = min(coupon, subtotal)
    discount = _round(gift_card + capped_coupon)

    taxable_amount = sum((_line_amount(line) for line in lines if is_taxable_line(line)), Decimal('0'))
    taxable_amount = max(taxable_amount, Decimal('0'))

    if subtotal > 0:
        coupon_on_taxable = capped_coupon * taxable_amount / subtotal
    else:
        coupon_on_taxable = Decimal('0')
    taxable_after_discount = max(Decimal('0'), taxable_amount - coupon_on_taxable)

    tax = _round(taxable_after_discount * rate)
    shipping = max(to_money(shipping_cost), ZERO)
    total = _round(max(Decimal('0'), subtotal + tax + shipping - discount))

    return {
        'subtotal': subtotal,
        'tax': tax,
        'shipping': shipping,
        'discount': discount,
        'total': total,
        'taxable_amount': _round(taxable_amount),
    }


def calculate_gift_card_coverage(balance, amount_due) -> Decimal:
    """A gift card covers up to its balance or the amount due, whichever is less."""
    balance = to_money(balance)
    if balance <= 0:
        return ZERO
    return min(balance, max(to_money(amount_due), ZERO))


def resolve_tax_rate(session, settings, tax_enabled: bool = True) -> Decimal:
    """
    Tax rate (as a fraction) for a document.

    0 when the document is tax exempt; otherwise the enabled tax_settings
    row, falling back to the configured default percentage.
    """
    if not tax_enabled:
        return Decimal('0')

    row = session.query(TaxSettings).filter(TaxSettings.is_enabled.is_(True)).first()
    percent = Decimal(str(row.tax_rate)) if row and row.tax_rate is not None else settings.default_tax_rate
    return max(percent, Decimal('0')) / Decimal('100')
