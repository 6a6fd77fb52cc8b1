"""Order model."""
import enum
from sqlalchemy import Column, String, Numeric, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from printshop.database import Base, new_id


class PaymentStatus(str, enum.Enum):
    """Payment status shared by orders and invoices."""
    PENDING = 'pending'
    PAID = 'paid'
    FAILED = 'failed'
    REFUNDED = 'refunded'


# Allowed payment status transitions; refunded is terminal.
PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING.value: {PaymentStatus.PAID.value, PaymentStatus.FAILED.value},
    PaymentStatus.FAILED.value: {PaymentStatus.PENDING.value},
    PaymentStatus.PAID.value: {PaymentStatus.REFUNDED.value},
    PaymentStatus.REFUNDED.value: set(),
}


def quote_marker(quote_id: str) -> str:
    """Idempotency marker written into admin_notes for orders created from a quote."""
    return f"quote_id:{quote_id}"


class Order(Base):
    """Order (pedido confirmado)."""

    __tablename__ = 'shop_order'

    id = Column(String(36), primary_key=True, default=new_id)
    order_number = Column(String(16), nullable=False, unique=True)
    user_id = Column(String(36), ForeignKey('app_user.id'), nullable=True, index=True)

    # One order per approved quote (enforced by UNIQUE constraint)
    quote_id = Column(String(36), ForeignKey('quote.id'), nullable=True, unique=True, index=True)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    shipping = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)

    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String(30), nullable=True)
    shipping_address = Column(Text, nullable=True)
    billing_address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship('AppUser')
    quote = relationship('Quote')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', total={self.total}, payment_status='{self.payment_status}')>"
