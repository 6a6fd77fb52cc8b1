"""Order Item model."""
from sqlalchemy import Column, String, Integer, Numeric, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship
from printshop.database import Base, new_id


class OrderItem(Base):
    """
    Order Item (línea de pedido).

    product_id is NULL for non-catalog lines (gift cards, quote jobs).
    At most one line per (product, material, color, customization) per order;
    this is guaranteed by cart consolidation, not by a constraint.
    """

    __tablename__ = 'order_item'

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey('shop_order.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(String(36), nullable=True)
    product_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    selected_material = Column(String(36), nullable=True)
    selected_color = Column(String(36), nullable=True)
    custom_text = Column(Text, nullable=True)
    customization_selections = Column(JSON, nullable=True)

    # Relationships
    order = relationship('Order', back_populates='items')

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product='{self.product_name}', qty={self.quantity}, total={self.total_price})>"
