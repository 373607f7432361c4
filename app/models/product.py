"""Product model."""
import uuid

from sqlalchemy import Column, String, Text, Numeric, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base


class Product(Base):
    """
    Product template.
    
    Selecting a product on a quote line copies name/unit/price into the line;
    the line keeps no live link for display afterwards.
    """
    
    __tablename__ = 'product'
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey('app_user.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    unit = Column(String(20), nullable=False, default='個')
    default_price = Column(Numeric(14, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    
    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', price={self.default_price})>"
