"""Quote model for 報價單."""
import enum
import uuid

from sqlalchemy import Column, String, Numeric, DateTime, Date, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class QuoteStatus(enum.Enum):
    """Quote status enum. Any status may be set to any other."""
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def label(self):
        return QUOTE_STATUS_LABELS[self]

    @classmethod
    def label_for(cls, value):
        """Display label for a raw status string, '未知' when unrecognised."""
        try:
            return cls(value).label
        except ValueError:
            return '未知'


QUOTE_STATUS_LABELS = {
    QuoteStatus.DRAFT: '草稿',
    QuoteStatus.SENT: '已發送',
    QuoteStatus.ACCEPTED: '已接受',
    QuoteStatus.REJECTED: '已拒絕',
}


class Quote(Base):
    """
    Quote (報價單).
    
    subtotal/tax_amount/total are persisted but always derived from the
    items through the totals engine; the money columns carry enough scale
    that the stored figures match a fresh recomputation exactly.
    """
    
    __tablename__ = 'quote'
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey('app_user.id'), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey('customer.id', ondelete='RESTRICT'), nullable=False)
    staff_id = Column(String(36), ForeignKey('staff.id', ondelete='RESTRICT'), nullable=False)
    bank_id = Column(String(36), ForeignKey('bank.id', ondelete='RESTRICT'), nullable=False)
    quote_number = Column(String(32), nullable=False, index=True)
    contact_person = Column(String(120), nullable=False)
    quote_date = Column(Date, nullable=False)
    valid_until = Column(Date, nullable=False)
    subtotal = Column(Numeric(24, 8), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=5)
    tax_amount = Column(Numeric(24, 8), nullable=False, default=0)
    total = Column(Numeric(24, 8), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=QuoteStatus.DRAFT.value)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    
    # Relationships (read-side convenience for lists; documents go through the aggregate builder)
    customer = relationship('Customer', foreign_keys=[customer_id], lazy='joined')
    items = relationship('QuoteItem', back_populates='quote', order_by='QuoteItem.sort_order')
    
    def __repr__(self):
        return f"<Quote(id={self.id}, number='{self.quote_number}', status='{self.status}', total={self.total})>"
    
    @property
    def status_label(self):
        return QuoteStatus.label_for(self.status)
