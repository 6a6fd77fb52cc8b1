"""Tax settings model."""
from sqlalchemy import Column, String, Numeric, Boolean, DateTime
from sqlalchemy.sql import func
from printshop.database import Base, new_id


class TaxSettings(Base):
    """Shop-wide tax configuration. tax_rate is a percentage (21 = 21%)."""

    __tablename__ = 'tax_settings'

    id = Column(String(36), primary_key=True, default=new_id)
    tax_name = Column(String(50), nullable=False, default='IVA')
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    is_enabled = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<TaxSettings(name='{self.tax_name}', rate={self.tax_rate}, enabled={self.is_enabled})>"
