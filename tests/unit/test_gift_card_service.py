"""
Unit tests for gift card balance updates and redemption.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from sqlalchemy.exc import OperationalError

from printshop import database
from printshop.models import GiftCard
from printshop.exceptions import BusinessLogicError, NotFoundError, ConflictError, BalanceUpdateError
from printshop.services import gift_card_service
from printshop.services.gift_card_service import (
    update_balance, validate_gift_card, redeem_gift_card, set_balance_admin
)


def _balance(card_id):
    """Read the stored balance with a fresh session."""
    other = database.new_session()
    try:
        return other.get(GiftCard, card_id).current_balance
    finally:
        other.close()


class TestUpdateBalance:
    """Tests for the compare-and-swap update."""

    def test_matching_expected_balance_writes(self, session, gift_card):
        assert update_balance(session, gift_card.id, Decimal('70'), expected_current_balance=Decimal('100')) is True
        assert _balance(gift_card.id) == Decimal('70.00')

    def test_stale_expected_balance_is_rejected(self, session, gift_card):
        assert update_balance(session, gift_card.id, Decimal('70'), expected_current_balance=Decimal('90')) is False
        assert _balance(gift_card.id) == Decimal('100.00')

    def test_two_writers_one_winner(self, session, gift_card):
        """Both read 100; only the first conditional write lands."""
        card_id = gift_card.id
        first = database.new_session()
        second = database.new_session()
        try:
            read_a = first.get(GiftCard, card_id).current_balance
            read_b = second.get(GiftCard, card_id).current_balance

            won_a = update_balance(first, card_id, read_a - Decimal('30'), expected_current_balance=read_a)
            won_b = update_balance(second, card_id, read_b - Decimal('50'), expected_current_balance=read_b)
        finally:
            first.close()
            second.close()

        assert (won_a, won_b) == (True, False)
        assert _balance(card_id) == Decimal('70.00')

    def test_unconditional_update(self, session, gift_card):
        assert update_balance(session, gift_card.id, Decimal('250')) is True
        assert _balance(gift_card.id) == Decimal('250.00')

    def test_unknown_card(self, session):
        assert update_balance(session, 'no-such-card', Decimal('10')) is False

    def test_soft_deleted_card_not_written(self, session, gift_card):
        gift_card.deleted_at = datetime.now(timezone.utc)
        session.commit()

        assert update_balance(session, gift_card.id, Decimal('10')) is False

    def test_negative_balance_rejected(self, session, gift_card):
        with pytest.raises(BusinessLogicError):
            update_balance(session, gift_card.id, Decimal('-1'))

    def test_store_failure_is_not_a_lost_race(self, session, gift_card, monkeypatch):
        def broken_execute(*args, **kwargs):
            raise OperationalError('UPDATE gift_card', {}, Exception('database is locked'))

        monkeypatch.setattr(session, 'execute', broken_execute)

        with pytest.raises(BalanceUpdateError):
            update_balance(session, gift_card.id, Decimal('10'), expected_current_balance=Decimal('100'))


class TestValidateGiftCard:
    """Tests for validate_gift_card."""

    def test_code_normalized(self, session, gift_card):
        assert validate_gift_card(session, '  gift-test-100 ').id == gift_card.id

    def test_unknown_code(self, session):
        with pytest.raises(NotFoundError):
            validate_gift_card(session, 'NOPE-NOPE')

    def test_too_short(self, session):
        with pytest.raises(BusinessLogicError):
            validate_gift_card(session, 'ab')

    def test_inactive(self, session, gift_card):
        gift_card.is_active = False
        session.commit()

        with pytest.raises(BusinessLogicError):
            validate_gift_card(session, gift_card.code)

    def test_expired(self, session, gift_card):
        gift_card.expires_at = datetime.now(timezone.utc) - timedelta(days=1)
        session.commit()

        with pytest.raises(BusinessLogicError):
            validate_gift_card(session, gift_card.code)

    def test_empty_balance(self, session, gift_card):
        gift_card.current_balance = Decimal('0')
        session.commit()

        with pytest.raises(BusinessLogicError):
            validate_gift_card(session, gift_card.code)


class TestRedeemGiftCard:
    """Tests for redeem_gift_card."""

    def test_partial_cover(self, session, gift_card):
        result = redeem_gift_card(session, gift_card.code, Decimal('136.80'))

        assert result['amount_applied'] == Decimal('100.00')
        assert result['new_balance'] == Decimal('0.00')
        assert _balance(gift_card.id) == Decimal('0.00')

    def test_full_cover(self, session, gift_card):
        result = redeem_gift_card(session, gift_card.code, Decimal('40'))

        assert result['amount_applied'] == Decimal('40.00')
        assert result['previous_balance'] == Decimal('100.00')
        assert _balance(gift_card.id) == Decimal('60.00')

    def test_retries_with_fresh_balance_after_lost_race(self, session, gift_card, monkeypatch):
        """Another checkout spends €70 between our read and our write."""
        real_update = gift_card_service.update_balance
        calls = []

        def racing_update(sess, card_id, new_balance, expected_current_balance=None):
            if not calls:
                other = database.new_session()
                try:
                    real_update(other, card_id, Decimal('30'))
                finally:
                    other.close()
            calls.append(expected_current_balance)
            return real_update(sess, card_id, new_balance, expected_current_balance=expected_current_balance)

        monkeypatch.setattr(gift_card_service, 'update_balance', racing_update)

        result = redeem_gift_card(session, gift_card.code, Decimal('50'))

        assert calls == [Decimal('100.00'), Decimal('30.00')]
        assert result['amount_applied'] == Decimal('30.00')
        assert _balance(gift_card.id) == Decimal('0.00')

    def test_conflict_after_max_attempts(self, session, gift_card, monkeypatch):
        monkeypatch.setattr(gift_card_service, 'update_balance', lambda *a, **kw: False)

        with pytest.raises(ConflictError):
            redeem_gift_card(session, gift_card.code, Decimal('10'), max_attempts=3)

        assert _balance(gift_card.id) == Decimal('100.00')

    def test_non_positive_amount(self, session, gift_card):
        with pytest.raises(BusinessLogicError):
            redeem_gift_card(session, gift_card.code, Decimal('0'))


class TestSetBalanceAdmin:
    """Tests for set_balance_admin."""

    def test_sets_balance(self, session, gift_card):
        card = set_balance_admin(session, gift_card.id, Decimal('55.50'))
        assert card.current_balance == Decimal('55.50')

    def test_conditional_conflict(self, session, gift_card):
        with pytest.raises(ConflictError):
            set_balance_admin(session, gift_card.id, Decimal('10'), expected_current_balance=Decimal('99'))

    def test_unknown_card(self, session):
        with pytest.raises(NotFoundError):
            set_balance_admin(session, 'missing', Decimal('10'))
