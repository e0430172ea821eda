"""
Normalization of raw provider records into canonical transactions and streams.
"""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.exceptions import MalformedRecordError
from app.schemas.normalized import NormalizedTransaction, RecurringStream

logger = logging.getLogger(__name__)


def _parse_amount(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _category_path(value: Any) -> Optional[List[str]]:
    if not isinstance(value, (list, tuple)):
        return None
    path = [part.strip() for part in value if isinstance(part, str) and part.strip()]
    return path or None


def _nested_amount(value: Any) -> Optional[Decimal]:
    """Stream amounts arrive as {"amount": ...} objects."""
    if isinstance(value, Mapping):
        return _parse_amount(value.get("amount"))
    return _parse_amount(value)


def normalize_transaction(raw: Mapping[str, Any]) -> NormalizedTransaction:
    """
    Convert one raw provider transaction into a NormalizedTransaction.

    The provider's amount sign is kept (positive = money out). Optional fields
    that are absent or malformed become None; a missing amount or date raises
    MalformedRecordError.
    """
    record_id = _optional_str(raw.get("transaction_id")) or _optional_str(raw.get("id"))

    amount = _parse_amount(raw.get("amount"))
    if amount is None:
        raise MalformedRecordError(f"Transaction {record_id} has no usable amount", record_id)

    txn_date = _parse_date(raw.get("date"))
    if txn_date is None:
        raise MalformedRecordError(f"Transaction {record_id} has no usable date", record_id)

    if record_id is None:
        raise MalformedRecordError("Transaction has no id")

    account_id = _optional_str(raw.get("account_id"))
    if account_id is None:
        raise MalformedRecordError(f"Transaction {record_id} has no account reference", record_id)

    pending = raw.get("pending")

    return NormalizedTransaction(
        id=record_id,
        account_id=account_id,
        amount=amount,
        date=txn_date,
        name=_optional_str(raw.get("name")) or "",
        merchant_name=_optional_str(raw.get("merchant_name")),
        category=_category_path(raw.get("category")),
        user_category=_optional_str(raw.get("user_category")),
        pending=pending if isinstance(pending, bool) else False,
    )


def normalize_transactions(
    raw_records: List[Mapping[str, Any]]
) -> Tuple[List[NormalizedTransaction], List[MalformedRecordError]]:
    """Normalize a batch, skipping (and logging) malformed records."""
    normalized = []
    rejected = []
    for raw in raw_records:
        try:
            normalized.append(normalize_transaction(raw))
        except MalformedRecordError as e:
            logger.warning(f"Skipping malformed transaction: {e}")
            rejected.append(e)
    return normalized, rejected


def normalize_stream(raw: Mapping[str, Any], transaction_type: str) -> RecurringStream:
    """Convert one provider recurring stream (inflow or outflow)."""
    account_id = _optional_str(raw.get("account_id"))
    if account_id is None:
        raise MalformedRecordError(
            f"Recurring stream {raw.get('stream_id')} has no account reference",
            _optional_str(raw.get("stream_id")),
        )

    frequency = raw.get("frequency")
    if hasattr(frequency, "value"):
        frequency = frequency.value
    status = raw.get("status")
    if hasattr(status, "value"):
        status = status.value

    transaction_ids = raw.get("transaction_ids")
    if not isinstance(transaction_ids, (list, tuple)):
        transaction_ids = []

    return RecurringStream(
        account_id=account_id,
        transaction_type=transaction_type,
        description=_optional_str(raw.get("description")) or "",
        merchant_name=_optional_str(raw.get("merchant_name")),
        last_amount=_nested_amount(raw.get("last_amount")),
        average_amount=_nested_amount(raw.get("average_amount")),
        frequency=_optional_str(frequency) or "unknown",
        first_date=_parse_date(raw.get("first_date")),
        last_date=_parse_date(raw.get("last_date")),
        status=_optional_str(status),
        transaction_ids=[str(t) for t in transaction_ids],
        category=_category_path(raw.get("category")) or [],
    )


def normalize_streams(
    inflow_streams: List[Mapping[str, Any]],
    outflow_streams: List[Mapping[str, Any]],
) -> List[RecurringStream]:
    """Normalize a provider recurring response; outflows first, malformed streams skipped."""
    streams = []
    for raw_streams, transaction_type in ((outflow_streams, "expense"), (inflow_streams, "income")):
        for raw in raw_streams or []:
            try:
                streams.append(normalize_stream(raw, transaction_type))
            except MalformedRecordError as e:
                logger.warning(f"Skipping malformed recurring stream: {e}")
    return streams
