"""
Transaction API endpoints.
"""

from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.dependencies import (
    get_db,
    get_current_user_id,
    get_provider_client,
    get_category_rules,
    get_token_decryptor,
)
from app.exceptions import ProviderUnavailableError
from app.models import Transaction
from app.schemas.transaction import (
    TransactionUpdate,
    TransactionResponse,
    TransactionListResponse,
    AutoCategorizeResponse,
    SyncErrorResponse,
    SyncResponse,
)
from app.services import categorization_service, sync_service
from app.services.categorization_service import CategoryRule
from app.services.provider_client import ProviderClient
from app.services.recurring_service import DetectionConfig, get_detection_config

router = APIRouter(prefix="/transactions", tags=["transactions"])

SORT_COLUMNS = {
    "date": Transaction.date,
    "amount": Transaction.amount,
    "name": Transaction.name,
    "merchant_name": Transaction.merchant_name,
}


@router.get("", response_model=TransactionListResponse)
def list_transactions(
    search: Optional[str] = None,
    merchant_name: Optional[str] = None,
    account_id: Optional[str] = None,
    user_category: Optional[str] = None,
    transaction_type: Optional[str] = None,
    pending: Optional[bool] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    sort_by: str = Query("date"),
    sort_order: str = Query("desc"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Search and filter the caller's stored transactions."""
    query = db.query(Transaction).filter(Transaction.user_id == user_id)

    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Transaction.name.ilike(pattern), Transaction.merchant_name.ilike(pattern)))
    if merchant_name:
        query = query.filter(Transaction.merchant_name.ilike(f"%{merchant_name}%"))
    if account_id:
        query = query.filter(Transaction.account_id == account_id)
    if user_category:
        query = query.filter(Transaction.user_category == user_category)
    if transaction_type:
        query = query.filter(Transaction.transaction_type == transaction_type)
    if pending is not None:
        query = query.filter(Transaction.pending == pending)
    if start_date:
        query = query.filter(Transaction.date >= start_date)
    if end_date:
        query = query.filter(Transaction.date <= end_date)
    if min_amount is not None:
        query = query.filter(Transaction.amount >= min_amount)
    if max_amount is not None:
        query = query.filter(Transaction.amount <= max_amount)

    total = query.count()

    column = SORT_COLUMNS.get(sort_by, Transaction.date)
    ascending = sort_order in ("asc", "ascending")
    query = query.order_by(column.asc() if ascending else column.desc(), Transaction.id)

    items = query.offset(offset).limit(limit).all()

    return TransactionListResponse(items=items, total=total, limit=limit, offset=offset)


@router.post("/auto-categorize", response_model=AutoCategorizeResponse)
def auto_categorize(
    user_id: str = Depends(get_current_user_id),
    rules: Sequence[CategoryRule] = Depends(get_category_rules),
    db: Session = Depends(get_db)
):
    """Fill in heuristic categories where the provider gave none."""
    counts = categorization_service.auto_categorize_transactions(db, user_id, rules)

    if counts["total_checked"] == 0:
        message = "No transactions to categorize"
    else:
        plural = "" if counts["categorized_count"] == 1 else "s"
        message = f"Successfully categorized {counts['categorized_count']} transaction{plural}"

    return AutoCategorizeResponse(message=message, **counts)


@router.post("/sync", response_model=SyncResponse)
def sync_transactions(
    user_id: str = Depends(get_current_user_id),
    provider: Optional[ProviderClient] = Depends(get_provider_client),
    config: DetectionConfig = Depends(get_detection_config),
    rules: Sequence[CategoryRule] = Depends(get_category_rules),
    decrypt_token=Depends(get_token_decryptor),
    db: Session = Depends(get_db)
):
    """
    Manual sync from the provider, limited to once per cooldown window.
    Items that fail are reported in `errors`; the rest are still synced.
    """
    if provider is None:
        raise ProviderUnavailableError("Plaid credentials are not configured")

    try:
        result = sync_service.sync_user(
            db,
            user_id,
            provider,
            config,
            rules=rules,
            decrypt_token=decrypt_token,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return SyncResponse(
        success=True,
        message=result.message,
        synced_count=result.synced_count,
        skipped_count=result.skipped_count,
        recurring_count=result.recurring_count,
        synced_at=result.synced_at,
        errors=[SyncErrorResponse(**vars(e)) for e in result.errors],
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get a single transaction."""
    txn = db.query(Transaction).filter(Transaction.id == transaction_id, Transaction.user_id == user_id).first()
    if not txn:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn


@router.patch("/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: str,
    update: TransactionUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Update user-editable fields of a transaction."""
    txn = db.query(Transaction).filter(Transaction.id == transaction_id, Transaction.user_id == user_id).first()
    if not txn:
        raise HTTPException(status_code=404, detail="Transaction not found")

    update_data = update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(txn, field, value)

    db.commit()
    db.refresh(txn)
    return txn
