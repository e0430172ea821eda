"""
Linked item and account database models.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from app.database import Base


class LinkedItem(Base):
    """A provider login (one institution) holding the access token for its accounts."""

    __tablename__ = "linked_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    provider_item_id = Column(String(100), nullable=True)
    institution_name = Column(String(100), nullable=True)
    access_token = Column(String(255), nullable=False)  # May be encrypted at rest
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    accounts = relationship("Account", back_populates="linked_item")


class Account(Base):
    """Account model."""

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    linked_item_id = Column(String(36), ForeignKey("linked_items.id"), nullable=False)
    provider_account_id = Column(String(100), nullable=False)  # Provider's account reference
    name = Column(String(100), nullable=False)
    mask = Column(String(10), nullable=True)
    account_type = Column(String(50), nullable=True)
    account_subtype = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    linked_item = relationship("LinkedItem", back_populates="accounts")
    transactions = relationship("Transaction", back_populates="account")
    recurring_transactions = relationship("RecurringTransaction", back_populates="account")

    __table_args__ = (
        Index("idx_account_provider", "linked_item_id", "provider_account_id", unique=True),
    )
