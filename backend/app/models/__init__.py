"""
Database models package.
"""

from app.models.account import Account, LinkedItem
from app.models.transaction import Transaction
from app.models.recurring import RecurringTransaction, Frequency, SeriesSource

__all__ = [
    "Account",
    "LinkedItem",
    "Transaction",
    "RecurringTransaction",
    "Frequency",
    "SeriesSource",
]
