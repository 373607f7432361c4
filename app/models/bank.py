"""Bank account model."""
import uuid

from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base


class Bank(Base):
    """Bank account printed as remittance instructions on a quote."""
    
    __tablename__ = 'bank'
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey('app_user.id'), nullable=False, index=True)
    bank_name = Column(String(120), nullable=False)
    account_name = Column(String(120), nullable=False)
    account_number = Column(String(64), nullable=False)
    branch_name = Column(String(120), nullable=True)
    swift_code = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    
    def __repr__(self):
        return f"<Bank(id={self.id}, bank_name='{self.bank_name}', account='{self.account_number}')>"
