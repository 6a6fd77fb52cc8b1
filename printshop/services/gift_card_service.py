"""
Gift card service - validation, redemption and balance updates.

Every balance change for a redemption goes through update_balance with the
balance read just before (compare-and-swap). A False result means another
checkout won the race: reload and decide again, never treat it as success.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import func

from printshop.models import GiftCard
from printshop.exceptions import (
    BusinessLogicError, NotFoundError, ConflictError, BalanceUpdateError
)
from printshop.services.pricing_service import to_money, calculate_gift_card_coverage

logger = logging.getLogger(__name__)


def normalize_code(code: Optional[str]) -> str:
    return (code or '').strip().upper()


def update_balance(session, card_id: str, new_balance, expected_current_balance=None) -> bool:
    """
    Set a gift card's current_balance in a single UPDATE.

    Args:
        session: SQLAlchemy session (committed on success)
        card_id: gift card id
        new_balance: balance to store (must be >= 0)
        expected_current_balance: when given, the row is only written if its
            stored balance still equals this value

    Returns:
        True if the row was written, False if no row matched (lost race,
        unknown or soft-deleted card).

    Raises:
        BusinessLogicError: negative new balance
        BalanceUpdateError: the database failed the statement
    """
    new_balance = to_money(new_balance)
    if new_balance < 0:
        raise BusinessLogicError('El saldo de la tarjeta regalo no puede ser negativo')

    stmt = (
        update(GiftCard)
        .where(GiftCard.id == card_id, GiftCard.deleted_at.is_(None))
        .values(current_balance=new_balance, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if expected_current_balance is not None:
        stmt = stmt.where(GiftCard.current_balance == to_money(expected_current_balance))

    try:
        result = session.execute(stmt)
        updated = result.rowcount == 1
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[GIFT CARD] ✗ Balance update failed for {card_id}: {e}")
        raise BalanceUpdateError('Error al actualizar el saldo de la tarjeta regalo')

    if updated:
        logger.info(f"[GIFT CARD] Balance of {card_id} set to {new_balance}")
    elif expected_current_balance is not None:
        logger.warning(
            f"[GIFT CARD] Balance of {card_id} changed concurrently "
            f"(expected {to_money(expected_current_balance)})"
        )
    return updated


def validate_gift_card(session, code: str) -> GiftCard:
    """
    Load a redeemable gift card by code.

    Checks format, existence, soft delete, active flag, expiry and balance.
    """
    code = normalize_code(code)
    if not code:
        raise BusinessLogicError('Ingresa un código de tarjeta regalo')
    if len(code) < 3 or len(code) > 50:
        raise BusinessLogicError('El código de tarjeta regalo es inválido')

    card = session.query(GiftCard).filter(
        GiftCard.code == code,
        GiftCard.deleted_at.is_(None)
    ).first()

    if not card:
        raise NotFoundError('Código de tarjeta regalo inválido')
    if not card.is_active:
        raise BusinessLogicError('Esta tarjeta regalo no está activa')
    if card.is_expired:
        raise BusinessLogicError('Esta tarjeta regalo ha expirado')
    if to_money(card.current_balance) <= 0:
        raise BusinessLogicError('Esta tarjeta regalo no tiene saldo disponible')

    return card


def redeem_gift_card(session, code: str, amount_due, max_attempts: int = 3) -> Dict[str, Any]:
    """
    Deduct up to amount_due from a gift card.

    Re-reads the card and recomputes the coverage after every lost race,
    up to max_attempts times.

    Returns:
        dict with gift_card_id, code, amount_applied, previous_balance, new_balance

    Raises:
        ConflictError: every attempt lost the race
    """
    amount_due = to_money(amount_due)
    if amount_due <= 0:
        raise BusinessLogicError('El importe a cubrir debe ser positivo')

    for attempt in range(1, max_attempts + 1):
        card = validate_gift_card(session, code)
        previous_balance = to_money(card.current_balance)
        amount_applied = calculate_gift_card_coverage(previous_balance, amount_due)
        new_balance = previous_balance - amount_applied

        if update_balance(session, card.id, new_balance, expected_current_balance=previous_balance):
            logger.info(
                f"[GIFT CARD] Redeemed {amount_applied} from {card.code} "
                f"({previous_balance} -> {new_balance}, attempt {attempt})"
            )
            return {
                'gift_card_id': card.id,
                'code': card.code,
                'amount_applied': amount_applied,
                'previous_balance': previous_balance,
                'new_balance': new_balance,
            }

        # Lost the race: drop cached state so the next read hits the database
        session.expire_all()

    raise ConflictError(
        'El saldo de la tarjeta regalo cambió durante el pago. Inténtalo de nuevo.',
        payload={'code': normalize_code(code)}
    )


def set_balance_admin(session, card_id: str, new_balance, expected_current_balance=None) -> GiftCard:
    """Administrative balance correction (unconditional unless expected is given)."""
    card = session.query(GiftCard).filter(GiftCard.id == card_id, GiftCard.deleted_at.is_(None)).first()
    if not card:
        raise NotFoundError('Tarjeta regalo no encontrada')

    if not update_balance(session, card_id, new_balance, expected_current_balance=expected_current_balance):
        raise ConflictError('El saldo de la tarjeta regalo fue modificado por otra operación')

    session.refresh(card)
    return card

