"""
Account Pydantic schemas for API responses.
"""

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


class AccountResponse(BaseModel):
    """Schema for account response."""
    id: str
    linked_item_id: str
    provider_account_id: str
    name: str
    mask: Optional[str] = None
    account_type: Optional[str] = None
    account_subtype: Optional[str] = None
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AccountList(BaseModel):
    """Schema for listing accounts."""
    items: list[AccountResponse]
    total: int
