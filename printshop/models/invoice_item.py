"""Invoice Item model."""
from sqlalchemy import Column, String, Integer, Numeric, Boolean, Text, ForeignKey
from sqlalchemy.orm import relationship
from printshop.database import Base, new_id


class InvoiceItem(Base):
    """Invoice Item (línea de factura). Gift card lines carry tax_enabled=False."""

    __tablename__ = 'invoice_item'

    id = Column(String(36), primary_key=True, default=new_id)
    invoice_id = Column(String(36), ForeignKey('invoice.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(String(36), nullable=True)
    product_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    tax_enabled = Column(Boolean, nullable=False, default=True)

    # Relationships
    invoice = relationship('Invoice', back_populates='items')

    def __repr__(self):
        return f"<InvoiceItem(id={self.id}, product='{self.product_name}', total={self.total_price})>"
