"""Pydantic schemas for recurring series."""

from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal

from app.schemas.transaction import SyncErrorResponse


class RecurringTransactionResponse(BaseModel):
    id: str
    account_id: str
    name: str
    normalized_name: str
    merchant_name: Optional[str] = None
    expected_amount: Decimal
    average_amount: Decimal
    frequency: str
    start_date: date
    last_transaction_date: Optional[date] = None
    next_due_date: Optional[date] = None
    transaction_type: str
    is_subscription: bool
    is_active: bool
    total_occurrences: int
    source: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RecurringSyncResponse(BaseModel):
    """Response from recomputing recurring series."""
    success: bool
    series_count: int
    errors: List[SyncErrorResponse] = []
