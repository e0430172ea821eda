"""
Transaction database model.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Date, Numeric, Text, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship, validates
from app.database import Base
from app.schemas.normalized import transaction_type_for


class Transaction(Base):
    """Transaction model."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    provider_transaction_id = Column(String(100), nullable=False)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)  # Positive = expense, negative = income
    name = Column(Text, nullable=False, default="")
    merchant_name = Column(String(255), nullable=True)
    category = Column(JSON, nullable=True)  # Provider category path, most general first
    primary_category = Column(String(100), nullable=True)
    user_category = Column(String(100), nullable=True)
    transaction_type = Column(String(10), nullable=False)  # Always derived from amount
    pending = Column(Boolean, default=False, nullable=False)
    is_recurring = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    account = relationship("Account", back_populates="transactions")

    # Indexes for common queries
    __table_args__ = (
        Index("idx_transaction_provider", "account_id", "provider_transaction_id", unique=True),
        Index("idx_transaction_date_account", "date", "account_id"),
    )

    @validates("amount")
    def _sync_transaction_type(self, key, value):
        self.transaction_type = transaction_type_for(value)
        return value

    @property
    def display_name(self) -> str:
        return self.merchant_name or self.name
