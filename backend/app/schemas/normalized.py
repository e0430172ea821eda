"""
Canonical records passed between the normalizer, categorizer, detector and
reconciliation steps.
"""

from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import Optional, List, Literal
from datetime import date
from decimal import Decimal


EXPENSE = "expense"
INCOME = "income"
TRANSFER = "transfer"

Direction = Literal["expense", "income"]


def transaction_type_for(amount) -> str:
    """Positive amounts leave the account, negative ones enter it, zero is a transfer."""
    amount = Decimal(str(amount))
    if amount > 0:
        return EXPENSE
    if amount < 0:
        return INCOME
    return TRANSFER


class NormalizedTransaction(BaseModel):
    """A provider transaction after normalization."""

    model_config = ConfigDict(frozen=True)

    id: str
    account_id: str
    amount: Decimal
    date: date
    name: str = ""
    merchant_name: Optional[str] = None
    category: Optional[List[str]] = None
    user_category: Optional[str] = None
    pending: bool = False

    @computed_field
    @property
    def transaction_type(self) -> str:
        return transaction_type_for(self.amount)

    @property
    def display_name(self) -> str:
        return self.merchant_name or self.name

    @property
    def primary_category(self) -> Optional[str]:
        return self.category[0] if self.category else None


class RecurringStream(BaseModel):
    """A provider-reported recurring stream after normalization."""

    account_id: str
    transaction_type: Direction
    description: str = ""
    merchant_name: Optional[str] = None
    last_amount: Optional[Decimal] = None
    average_amount: Optional[Decimal] = None
    frequency: str = "unknown"
    first_date: Optional[date] = None
    last_date: Optional[date] = None
    status: Optional[str] = None
    transaction_ids: List[str] = Field(default_factory=list)
    category: List[str] = Field(default_factory=list)


class RecurringSeriesCandidate(BaseModel):
    """A recurring series ready to be upserted for one account."""

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
    transaction_type: Direction
    is_subscription: bool = False
    is_active: bool = True
    total_occurrences: int
    source: str
    notes: Optional[str] = None
    transaction_ids: List[str] = Field(default_factory=list)
