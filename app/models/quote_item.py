"""QuoteItem model for quote line items."""
import uuid

from sqlalchemy import Column, String, Text, Numeric, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class QuoteItem(Base):
    """
    Quote line item (報價項目).
    
    Stores a snapshot of the product details copied at selection time.
    ``amount`` is always quantity * unit_price; it is persisted only
    because the store has no computed columns.
    """
    
    __tablename__ = 'quote_item'
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quote_id = Column(String(36), ForeignKey('quote.id'), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey('product.id', ondelete='SET NULL'), nullable=True)
    product_name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    quantity = Column(Numeric(12, 2), nullable=False)
    unit = Column(String(20), nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False)
    amount = Column(Numeric(20, 4), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    quote = relationship('Quote', back_populates='items')
    
    def __repr__(self):
        return f"<QuoteItem(id={self.id}, quote_id={self.quote_id}, product='{self.product_name}', qty={self.quantity}, amount={self.amount})>"
