"""
Pydantic schemas package.
"""

from app.schemas.account import (
    AccountResponse,
    AccountList,
)
from app.schemas.normalized import (
    NormalizedTransaction,
    RecurringStream,
    RecurringSeriesCandidate,
)
from app.schemas.recurring import (
    RecurringTransactionResponse,
    RecurringSyncResponse,
)
from app.schemas.transaction import (
    TransactionUpdate,
    TransactionResponse,
    TransactionListResponse,
    AutoCategorizeResponse,
    SyncErrorResponse,
    SyncResponse,
)

__all__ = [
    "AccountResponse",
    "AccountList",
    "NormalizedTransaction",
    "RecurringStream",
    "RecurringSeriesCandidate",
    "RecurringTransactionResponse",
    "RecurringSyncResponse",
    "TransactionUpdate",
    "TransactionResponse",
    "TransactionListResponse",
    "AutoCategorizeResponse",
    "SyncErrorResponse",
    "SyncResponse",
]
