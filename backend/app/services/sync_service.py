"""
Provider sync: pull transactions for every linked item, store them, then
refresh each account's recurring series.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import ProviderUnavailableError, RateLimitedError
from app.models.account import Account, LinkedItem
from app.models.transaction import Transaction
from app.schemas.normalized import NormalizedTransaction, RecurringStream
from app.services.categorization_service import (
    UNCATEGORIZED,
    CategoryRule,
    categorize_transaction,
)
from app.services.normalization_service import normalize_streams, normalize_transactions
from app.services.provider_client import ProviderClient
from app.services.reconciliation_service import reconcile_account, streams_for_account
from app.services.recurring_service import DetectionConfig

logger = logging.getLogger(__name__)

TokenDecryptor = Callable[[str], str]


def plain_token(token: str) -> str:
    return token


@dataclass
class SyncError:
    item_id: str
    institution_name: Optional[str]
    reason: str


@dataclass
class SyncResult:
    synced_at: datetime
    synced_count: int = 0
    skipped_count: int = 0
    recurring_count: int = 0
    items_synced: int = 0
    errors: List[SyncError] = field(default_factory=list)

    @property
    def message(self) -> str:
        plural = "" if self.synced_count == 1 else "s"
        return f"Successfully synced {self.synced_count} transaction{plural} and recurring charges"


def get_last_synced_at(db: Session, user_id: str) -> Optional[datetime]:
    """Most recent successful sync across the user's linked items, read from the database."""
    return db.query(func.max(LinkedItem.last_synced_at)).filter(
        LinkedItem.user_id == user_id
    ).scalar()


def check_sync_cooldown(
    db: Session,
    user_id: str,
    now: Optional[datetime] = None,
    cooldown: Optional[timedelta] = None,
) -> None:
    """Raise RateLimitedError if the user synced within the cooldown."""
    now = now or datetime.utcnow()
    cooldown = cooldown if cooldown is not None else timedelta(hours=settings.sync_cooldown_hours)

    last_synced_at = get_last_synced_at(db, user_id)
    if last_synced_at and last_synced_at > now - cooldown:
        raise RateLimitedError(last_synced_at, cooldown, now)


def _decrypt(item: LinkedItem, decrypt_token: TokenDecryptor) -> str:
    try:
        return decrypt_token(item.access_token)
    except Exception as e:
        raise ProviderUnavailableError(f"Could not decrypt access token: {e}", item.id) from e


def store_transactions(
    db: Session,
    user_id: str,
    accounts_by_provider_id: Dict[str, Account],
    transactions: Sequence[NormalizedTransaction],
    rules: Optional[Sequence[CategoryRule]] = None,
) -> int:
    """
    Upsert normalized transactions on (account, provider transaction id).
    Transactions for accounts we don't know about are dropped. A heuristic
    category is only written when the provider gave none and the user has
    not set one.
    """
    stored = 0
    for txn in transactions:
        account = accounts_by_provider_id.get(txn.account_id)
        if account is None:
            continue

        row = db.query(Transaction).filter(
            Transaction.account_id == account.id,
            Transaction.provider_transaction_id == txn.id,
        ).first()
        if row is None:
            row = Transaction(
                user_id=user_id,
                account_id=account.id,
                provider_transaction_id=txn.id,
            )
            db.add(row)

        row.amount = txn.amount
        row.date = txn.date
        row.name = txn.name
        row.merchant_name = txn.merchant_name
        row.category = txn.category
        row.primary_category = txn.primary_category
        row.pending = txn.pending

        if not txn.category and row.user_category is None:
            category = categorize_transaction(txn.name, txn.merchant_name, rules)
            if category != UNCATEGORIZED:
                row.user_category = category

        stored += 1

    db.flush()
    return stored


def _fetch_streams(
    provider: Optional[ProviderClient],
    access_token: Optional[str],
    accounts: Sequence[Account],
) -> List[RecurringStream]:
    if provider is None or access_token is None:
        return []
    raw = provider.get_recurring_streams(access_token, [a.provider_account_id for a in accounts])
    return normalize_streams(raw.get("inflow_streams", []), raw.get("outflow_streams", []))


def _reconcile_item(
    db: Session,
    user_id: str,
    item: LinkedItem,
    streams: Sequence[RecurringStream],
    config: DetectionConfig,
    today: date,
) -> int:
    count = 0
    for account in item.accounts:
        if not account.is_active:
            continue
        result = reconcile_account(
            db,
            user_id,
            account,
            streams_for_account(streams, account.provider_account_id),
            config,
            today,
        )
        count += result.series_count
    return count


def _linked_items(db: Session, user_id: str) -> List[LinkedItem]:
    return db.query(LinkedItem).filter(LinkedItem.user_id == user_id).order_by(LinkedItem.created_at).all()


def sync_user(
    db: Session,
    user_id: str,
    provider: ProviderClient,
    config: DetectionConfig,
    rules: Optional[Sequence[CategoryRule]] = None,
    decrypt_token: TokenDecryptor = plain_token,
    now: Optional[datetime] = None,
    enforce_cooldown: bool = True,
) -> SyncResult:
    """
    Manual "sync now": transactions and recurring series for every linked item.

    One item's provider or decryption failure is logged and reported in the
    result; the remaining items are still processed.
    """
    now = now or datetime.utcnow()

    items = _linked_items(db, user_id)
    if not items:
        raise ValueError("No accounts connected. Please connect an account first.")

    if enforce_cooldown:
        check_sync_cooldown(db, user_id, now)

    start_date = now.date() - timedelta(days=settings.transaction_sync_days)
    result = SyncResult(synced_at=now)

    logger.info(f"Syncing transactions for user {user_id} from {start_date} to {now.date()}")

    for item in items:
        try:
            access_token = _decrypt(item, decrypt_token)
            raw_transactions = provider.get_transactions(access_token, start_date, now.date())
            logger.info(f"Fetched {len(raw_transactions)} transactions from {item.institution_name}")

            transactions, rejected = normalize_transactions(raw_transactions)
            accounts = {a.provider_account_id: a for a in item.accounts}
            result.synced_count += store_transactions(db, user_id, accounts, transactions, rules)
            result.skipped_count += len(rejected)

            item.last_synced_at = now
            db.commit()
            result.items_synced += 1
        except ProviderUnavailableError as e:
            db.rollback()
            logger.error(f"Error syncing item {item.id} ({item.institution_name}): {e}")
            result.errors.append(SyncError(item.id, item.institution_name, str(e)))
            continue

        try:
            streams = _fetch_streams(provider, access_token, item.accounts)
            result.recurring_count += _reconcile_item(db, user_id, item, streams, config, now.date())
        except ProviderUnavailableError as e:
            db.rollback()
            logger.warning(f"Failed to fetch recurring streams for {item.institution_name}: {e}")
            result.errors.append(SyncError(item.id, item.institution_name, str(e)))

    logger.info(f"Manual sync complete: {result.synced_count} transactions synced")
    return result


def sync_recurring(
    db: Session,
    user_id: str,
    provider: Optional[ProviderClient],
    config: DetectionConfig,
    decrypt_token: TokenDecryptor = plain_token,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Refresh recurring series for every linked item without pulling transactions.
    With no provider configured every account falls back to local detection.
    """
    today = today or date.today()
    series_count = 0
    errors: List[SyncError] = []

    for item in _linked_items(db, user_id):
        try:
            access_token = _decrypt(item, decrypt_token) if provider is not None else None
            streams = _fetch_streams(provider, access_token, item.accounts)
            series_count += _reconcile_item(db, user_id, item, streams, config, today)
        except ProviderUnavailableError as e:
            db.rollback()
            logger.error(f"Recurring sync failed for item {item.id} ({item.institution_name}): {e}")
            errors.append(SyncError(item.id, item.institution_name, str(e)))

    return {"series_count": series_count, "errors": errors}
