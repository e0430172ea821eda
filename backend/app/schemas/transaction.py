"""
Transaction schemas.
"""

from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal


class TransactionUpdate(BaseModel):
    user_category: Optional[str] = None
    notes: Optional[str] = None
    is_recurring: Optional[bool] = None


class TransactionResponse(BaseModel):
    id: str
    account_id: str
    provider_transaction_id: str
    date: date
    amount: Decimal
    name: str
    merchant_name: Optional[str]
    category: Optional[List[str]]
    primary_category: Optional[str]
    user_category: Optional[str]
    transaction_type: str
    pending: bool
    is_recurring: bool
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionListResponse(BaseModel):
    items: list[TransactionResponse]
    total: int
    limit: int
    offset: int


class AutoCategorizeResponse(BaseModel):
    success: bool = True
    message: str
    total_checked: int
    categorized_count: int
    uncategorized_count: int


class SyncErrorResponse(BaseModel):
    item_id: str
    institution_name: Optional[str] = None
    reason: str


class SyncResponse(BaseModel):
    success: bool
    message: str
    synced_count: int
    skipped_count: int
    recurring_count: int
    synced_at: datetime
    errors: List[SyncErrorResponse] = []
