"""Document numbering sequences."""
from sqlalchemy import Column, String, BigInteger
from printshop.database import Base


INVOICE_SEQUENCE = 'invoice'


class DocumentSequence(Base):
    """
    Monotonic counter per document type.

    Advanced with a compare-and-swap UPDATE so concurrent allocators never
    hand out the same number.
    """

    __tablename__ = 'document_sequence'

    name = Column(String(50), primary_key=True)
    last_value = Column(BigInteger, nullable=False, default=0)

    def __repr__(self):
        return f"<DocumentSequence(name='{self.name}', last_value={self.last_value})>"
