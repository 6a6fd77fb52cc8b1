"""Checkout session model (order number reservation)."""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from printshop.database import Base


class CheckoutSession(Base):
    """Keeps the order number chosen for a checkout so retries reuse it."""

    __tablename__ = 'checkout_session'

    session_id = Column(String(128), primary_key=True)
    order_number = Column(String(16), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<CheckoutSession(session_id='{self.session_id}', order_number='{self.order_number}')>"
