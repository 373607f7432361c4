"""AppSetting model - per-user JSON settings blobs."""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base


class AppSetting(Base):
    """Key/value settings store (company branding, bank display settings)."""
    
    __tablename__ = 'app_setting'
    __table_args__ = (UniqueConstraint('user_id', 'key', name='uq_app_setting_user_key'),)
    
    user_id = Column(String(36), ForeignKey('app_user.id'), primary_key=True)
    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    
    def __repr__(self):
        return f"<AppSetting(user_id={self.user_id}, key='{self.key}')>"
