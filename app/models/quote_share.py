"""QuoteShare model - public read-only links to a quote."""
import uuid

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base


class QuoteShare(Base):
    """
    Public share link.
    
    Valid iff is_active and (expires_at is null or expires_at > now).
    Shares are never reactivated; sharing again mints a new share_id.
    """
    
    __tablename__ = 'quote_share'
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    share_id = Column(String(64), nullable=False, unique=True, index=True)
    quote_id = Column(String(36), ForeignKey('quote.id'), nullable=False, index=True)
    created_by = Column(String(36), ForeignKey('app_user.id'), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    
    def __repr__(self):
        return f"<QuoteShare(share_id='{self.share_id}', quote_id={self.quote_id}, active={self.is_active})>"
