"""
Recurring transaction database model.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Date, Integer, Numeric, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
import enum
from app.database import Base


class Frequency(str, enum.Enum):
    """Frequencies produced by local detection."""
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class SeriesSource(str, enum.Enum):
    """Where a recurring series came from."""
    provider = "provider"
    detected = "detected"


class RecurringTransaction(Base):
    """A recurring series (subscription, bill or regular income) for one account."""

    __tablename__ = "recurring_transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    name = Column(String(255), nullable=False)
    normalized_name = Column(String(255), nullable=False)
    merchant_name = Column(String(255), nullable=True)
    expected_amount = Column(Numeric(12, 2), nullable=False)
    average_amount = Column(Numeric(12, 2), nullable=False)
    # Detector buckets, or a lower-cased provider string such as "approximately_monthly"
    frequency = Column(String(50), nullable=False)
    start_date = Column(Date, nullable=False)
    last_transaction_date = Column(Date, nullable=True)
    next_due_date = Column(Date, nullable=True)
    transaction_type = Column(String(10), nullable=False)
    is_subscription = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    total_occurrences = Column(Integer, default=0, nullable=False)
    source = Column(String(20), default=SeriesSource.detected.value, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    account = relationship("Account", back_populates="recurring_transactions")

    __table_args__ = (
        UniqueConstraint("user_id", "normalized_name", "account_id", name="uq_recurring_natural_key"),
    )
