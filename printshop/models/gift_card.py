"""Gift Card model."""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Numeric, Boolean, DateTime, Text
from sqlalchemy.sql import func
from printshop.database import Base, new_id


class GiftCard(Base):
    """
    Gift Card (tarjeta regalo) - stored-value instrument.

    current_balance only goes down through redemption (compare-and-swap in
    gift_card_service.update_balance). Rows are soft-deleted via deleted_at.
    """

    __tablename__ = 'gift_card'

    id = Column(String(36), primary_key=True, default=new_id)
    code = Column(String(50), nullable=False, unique=True)
    recipient_email = Column(String(255), nullable=False)
    sender_name = Column(String(200), nullable=True)
    message = Column(Text, nullable=True)
    initial_amount = Column(Numeric(12, 2), nullable=False)
    current_balance = Column(Numeric(12, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    tax_enabled = Column(Boolean, nullable=False, default=False)  # digital product
    expires_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<GiftCard(id={self.id}, code='{self.code}', balance={self.current_balance})>"

    @property
    def is_expired(self) -> bool:
        """Check if card is past its expiry (calculated, not stored)."""
        if not self.expires_at:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at < datetime.now(timezone.utc)
