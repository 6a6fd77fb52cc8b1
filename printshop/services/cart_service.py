"""Cart service - consolidation of cart lines into order items."""
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

from printshop.models import OrderItem
from printshop.exceptions import BusinessLogicError
from printshop.services.pricing_service import to_money


def _line_key(line: Dict[str, Any]) -> str:
    """Lines with the same product, material, color and customizations merge."""
    product_id = None if line.get('is_gift_card') else line.get('product_id')
    customizations = json.dumps(line.get('customization_selections') or [], sort_keys=True, default=str)
    return json.dumps(
        [product_id, line.get('material_id'), line.get('color_id'), customizations],
        default=str,
    )


def validate_cart_lines(lines: List[Dict[str, Any]]) -> None:
    """
    Reject lines that cannot become order items.

    Raises:
        BusinessLogicError: quantity not a whole number >= 1, or price
            missing, non-numeric or negative
    """
    for index, line in enumerate(lines, start=1):
        if not isinstance(line, dict):
            raise BusinessLogicError(f'Línea {index} del carrito no válida')

        quantity = line.get('quantity')
        if isinstance(quantity, bool) or not isinstance(quantity, (int, str)) or not str(quantity).strip().isdigit():
            raise BusinessLogicError(f'Cantidad no válida en la línea {index}: {quantity!r}')
        if int(quantity) < 1:
            raise BusinessLogicError(f'La cantidad debe ser al menos 1 (línea {index})')

        price = line.get('price')
        if price is None or price == '' or isinstance(price, bool):
            raise BusinessLogicError(f'Falta el precio en la línea {index}')
        try:
            amount = to_money(price)
        except (ValueError, ArithmeticError):
            raise BusinessLogicError(f'Precio no válido en la línea {index}: {price!r}')
        if amount < 0:
            raise BusinessLogicError(f'El precio no puede ser negativo (línea {index})')


def consolidate_cart_lines(lines: List[Dict[str, Any]], order_id: Optional[str]) -> List[Dict[str, Any]]:
    """
    Convert cart lines to order item drafts, merging duplicates.

    Quantities of merged lines are summed and total_price recomputed from the
    first line's unit price. Drafts keep the order in which each key was first
    seen. An empty cart gives an empty list.
    """
    drafts: Dict[str, Dict[str, Any]] = {}

    for line in lines:
        key = _line_key(line)
        quantity = int(line.get('quantity') or 0)

        existing = drafts.get(key)
        if existing:
            existing['quantity'] += quantity
            existing['total_price'] = to_money(existing['unit_price'] * existing['quantity'])
            continue

        unit_price = to_money(line.get('price'))
        drafts[key] = {
            'order_id': order_id,
            'product_id': None if line.get('is_gift_card') else line.get('product_id'),
            'product_name': line.get('name') or 'Producto',
            'quantity': quantity,
            'unit_price': unit_price,
            'total_price': to_money(unit_price * Decimal(quantity)),
            'selected_material': line.get('material_id') or None,
            'selected_color': line.get('color_id') or None,
            'custom_text': line.get('custom_text') or None,
            'customization_selections': line.get('customization_selections') or None,
        }

    return list(drafts.values())


def add_order_items(session, drafts: List[Dict[str, Any]]) -> List[OrderItem]:
    """Add consolidated drafts to the session as OrderItem rows (no commit)."""
    items = [OrderItem(**draft) for draft in drafts]
    session.add_all(items)
    return items
