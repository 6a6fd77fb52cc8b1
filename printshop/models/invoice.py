"""Invoice model."""
from sqlalchemy import Column, String, Numeric, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from printshop.database import Base, new_id
from printshop.models.order import PaymentStatus


class Invoice(Base):
    """
    Invoice (factura) - the fiscal document for an order or an approved quote.

    quote_id is UNIQUE: concurrent approvals of one quote can insert at most
    one invoice, the loser re-reads the winner's row.
    """

    __tablename__ = 'invoice'

    id = Column(String(36), primary_key=True, default=new_id)
    invoice_number = Column(String(32), nullable=False, unique=True)
    quote_id = Column(String(36), ForeignKey('quote.id'), nullable=True, unique=True, index=True)
    order_id = Column(String(36), ForeignKey('shop_order.id'), nullable=True, index=True)
    user_id = Column(String(36), ForeignKey('app_user.id'), nullable=True, index=True)

    issue_date = Column(DateTime(timezone=True), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    shipping = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)

    gift_card_code = Column(String(50), nullable=True)
    gift_card_amount = Column(Numeric(12, 2), nullable=True)
    notes = Column(Text, nullable=True)

    # Set once the customer email for this invoice went out
    notified_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    quote = relationship('Quote')
    order = relationship('Order')
    user = relationship('AppUser')
    items = relationship('InvoiceItem', back_populates='invoice', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', total={self.total}, payment_status='{self.payment_status}')>"
