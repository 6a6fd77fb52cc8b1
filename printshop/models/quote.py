"""Quote model for customer print requests."""
import enum
from typing import Optional
from sqlalchemy import Column, String, Numeric, Integer, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from printshop.database import Base, new_id


# Legacy free-text labels that mean "approved". Admins type these into the
# status editor, so matching is case-insensitive.
APPROVED_LABELS = frozenset({'approved', 'aprobado', 'aprobada'})


class QuoteStatus(enum.Enum):
    """Closed set of quote states seen by the approval pipeline."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    OTHER = "other"

    @classmethod
    def from_label(cls, status_name: Optional[str], status_slug: Optional[str] = None) -> 'QuoteStatus':
        """
        Translate a legacy status label (and optional slug) into the enum.

        Only approval is recognised; every other label maps to OTHER, which
        the pipeline treats as "nothing to do".
        """
        slug = (status_slug or '').strip().lower()
        name = (status_name or '').strip().lower()
        if slug == cls.APPROVED.value or name in APPROVED_LABELS:
            return cls.APPROVED
        for member in (cls.PENDING, cls.REJECTED):
            if slug == member.value or name == member.value:
                return member
        return cls.OTHER


class Quote(Base):
    """
    Quote (cotización) - a customer's priced request for a print job.

    Created by the quoting flow; read-only for the approval pipeline.
    """

    __tablename__ = 'quote'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('app_user.id'), nullable=True, index=True)
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_language = Column(String(8), nullable=True)
    quote_type = Column(String(50), nullable=False, default='file_upload')
    description = Column(Text, nullable=True)
    estimated_price = Column(Numeric(12, 2), nullable=True)
    shipping_cost = Column(Numeric(12, 2), nullable=True)
    tax_enabled = Column(Boolean, nullable=True)  # NULL means taxable
    quantity = Column(Integer, nullable=True)
    material_id = Column(String(36), nullable=True)
    color_id = Column(String(36), nullable=True)
    status = Column(String(50), nullable=False, default='pending')

    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    country = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship('AppUser', foreign_keys=[user_id])

    def __repr__(self):
        return f"<Quote(id={self.id}, type='{self.quote_type}', status='{self.status}', price={self.estimated_price})>"

    @property
    def is_taxable(self) -> bool:
        """Quotes created before the tax flag existed are taxable."""
        return True if self.tax_enabled is None else bool(self.tax_enabled)

    @property
    def full_address(self) -> Optional[str]:
        parts = [p for p in (self.address, self.city, self.postal_code, self.country) if p]
        return ', '.join(parts) or None
