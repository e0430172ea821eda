"""
Merging provider recurring streams and locally detected patterns into the
persisted recurring series.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from app.models.account import Account
from app.models.recurring import RecurringTransaction, SeriesSource
from app.models.transaction import Transaction
from app.schemas.normalized import (
    EXPENSE,
    NormalizedTransaction,
    RecurringSeriesCandidate,
    RecurringStream,
)
from app.services.recurring_service import (
    CENTS,
    SUBSCRIPTION_CATEGORY_HINTS,
    DetectionConfig,
    apply_lookback_window,
    calculate_next_due_date,
    detect_all_recurring,
    has_subscription_keyword,
    normalize_merchant_key,
)

logger = logging.getLogger(__name__)

# Fields rewritten on every upsert; id, key columns and created_at are kept
DERIVED_FIELDS = (
    "name",
    "merchant_name",
    "expected_amount",
    "average_amount",
    "frequency",
    "start_date",
    "last_transaction_date",
    "next_due_date",
    "transaction_type",
    "is_subscription",
    "is_active",
    "total_occurrences",
    "source",
    "notes",
)


@dataclass
class ReconciliationResult:
    account_id: str
    source: str
    series_count: int


def _abs_or_zero(value: Optional[Decimal]) -> Decimal:
    return abs(value).quantize(CENTS) if value is not None else Decimal("0.00")


def stream_to_candidate(
    stream: RecurringStream,
    account_id: str,
    config: DetectionConfig,
    today: Optional[date] = None,
) -> RecurringSeriesCandidate:
    """Convert a normalized provider stream into a series for the given stored account."""
    name = stream.merchant_name or stream.description or "Unknown"

    if stream.transaction_type == EXPENSE:
        category_match = any(
            hint in part.lower() for part in stream.category for hint in SUBSCRIPTION_CATEGORY_HINTS
        )
        merchant_text = stream.merchant_name or stream.description
        subscription = category_match or has_subscription_keyword(merchant_text, config.subscription_keywords)
    else:
        subscription = False

    expected = stream.last_amount or stream.average_amount

    return RecurringSeriesCandidate(
        account_id=account_id,
        name=name,
        normalized_name=normalize_merchant_key(name) or name.lower(),
        merchant_name=stream.merchant_name,
        expected_amount=_abs_or_zero(expected),
        average_amount=_abs_or_zero(stream.average_amount),
        frequency=stream.frequency.lower(),
        start_date=stream.first_date or (today or date.today()),
        last_transaction_date=stream.last_date,
        next_due_date=calculate_next_due_date(stream.last_date, stream.frequency, today),
        transaction_type=stream.transaction_type,
        is_subscription=subscription,
        is_active=(stream.status or "").upper() == "MATURE",
        total_occurrences=len(stream.transaction_ids),
        source=SeriesSource.provider.value,
        notes=", ".join(stream.category) or None,
        transaction_ids=stream.transaction_ids,
    )


def stored_transactions_for_account(db: Session, account: Account) -> List[NormalizedTransaction]:
    """Read an account's stored transactions back as normalized records."""
    rows = db.query(Transaction).filter(Transaction.account_id == account.id).all()
    return [
        NormalizedTransaction(
            id=row.provider_transaction_id,
            account_id=row.account_id,
            amount=row.amount,
            date=row.date,
            name=row.name or "",
            merchant_name=row.merchant_name,
            category=row.category or None,
            user_category=row.user_category,
            pending=row.pending,
        )
        for row in rows
    ]


def upsert_recurring_series(
    db: Session,
    user_id: str,
    candidate: RecurringSeriesCandidate,
) -> RecurringTransaction:
    """
    Replace the series stored under (user, normalized name, account), or
    create it. Derived fields are overwritten as a whole.
    """
    series = db.query(RecurringTransaction).filter(
        RecurringTransaction.user_id == user_id,
        RecurringTransaction.normalized_name == candidate.normalized_name,
        RecurringTransaction.account_id == candidate.account_id,
    ).first()

    if series is None:
        series = RecurringTransaction(
            user_id=user_id,
            account_id=candidate.account_id,
            normalized_name=candidate.normalized_name,
        )
        db.add(series)

    for field in DERIVED_FIELDS:
        setattr(series, field, getattr(candidate, field))

    db.flush()
    return series


def upsert_many(
    db: Session,
    user_id: str,
    candidates: Sequence[RecurringSeriesCandidate],
) -> List[RecurringTransaction]:
    """Upsert a batch; a later candidate with the same key replaces an earlier one."""
    seen = {}
    stored = []
    for candidate in candidates:
        key = (candidate.account_id, candidate.normalized_name)
        previous = seen.get(key)
        if previous is not None:
            logger.warning(
                f"Recurring {candidate.transaction_type} series '{candidate.name}' on account "
                f"{candidate.account_id} replaces the {previous.transaction_type} series with the same key"
            )
        seen[key] = candidate
        stored.append(upsert_recurring_series(db, user_id, candidate))
    return stored


def reconcile_account(
    db: Session,
    user_id: str,
    account: Account,
    streams: Sequence[RecurringStream],
    config: DetectionConfig,
    today: Optional[date] = None,
) -> ReconciliationResult:
    """
    Persist the recurring series for one account.

    Provider streams win whenever there are any; local detection over the
    account's stored history only runs when the provider reported none.
    Series missing from this pass are left in place.
    """
    today = today or date.today()

    if streams:
        candidates = [stream_to_candidate(s, account.id, config, today) for s in streams]
        source = SeriesSource.provider.value
    else:
        history = apply_lookback_window(stored_transactions_for_account(db, account), config, today)
        candidates = []
        for candidate in detect_all_recurring(history, config):
            candidate.next_due_date = calculate_next_due_date(
                candidate.last_transaction_date, candidate.frequency, today
            )
            candidates.append(candidate)
        source = SeriesSource.detected.value

    upsert_many(db, user_id, candidates)
    db.commit()

    logger.info(f"Stored {len(candidates)} {source} recurring series for account {account.id}")
    return ReconciliationResult(account_id=account.id, source=source, series_count=len(candidates))


def streams_for_account(streams: Sequence[RecurringStream], provider_account_id: str) -> List[RecurringStream]:
    return [s for s in streams if s.account_id == provider_account_id]
