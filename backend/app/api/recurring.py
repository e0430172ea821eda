"""API endpoints for recurring series."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from app.dependencies import (
    get_db,
    get_current_user_id,
    get_provider_client,
    get_token_decryptor,
)
from app.models.recurring import RecurringTransaction
from app.schemas.recurring import RecurringTransactionResponse, RecurringSyncResponse
from app.schemas.transaction import SyncErrorResponse
from app.services import recurring_service, sync_service
from app.services.provider_client import ProviderClient
from app.services.recurring_service import DetectionConfig, get_detection_config

router = APIRouter(prefix="/recurring", tags=["recurring"])


@router.get("", response_model=List[RecurringTransactionResponse])
def get_recurring_series(
    include_inactive: bool = Query(False),
    transaction_type: Optional[str] = Query(None),
    subscriptions_only: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get the caller's recurring series, soonest due first."""
    return recurring_service.get_recurring_series(
        db,
        user_id,
        include_inactive=include_inactive,
        transaction_type=transaction_type,
        subscriptions_only=subscriptions_only,
    )


@router.post("/sync", response_model=RecurringSyncResponse)
def sync_recurring(
    user_id: str = Depends(get_current_user_id),
    provider: Optional[ProviderClient] = Depends(get_provider_client),
    config: DetectionConfig = Depends(get_detection_config),
    decrypt_token=Depends(get_token_decryptor),
    db: Session = Depends(get_db)
):
    """
    Recompute recurring series from provider streams, or from stored
    history for accounts where the provider reports none.
    """
    result = sync_service.sync_recurring(db, user_id, provider, config, decrypt_token=decrypt_token)
    return RecurringSyncResponse(
        success=True,
        series_count=result["series_count"],
        errors=[SyncErrorResponse(**vars(e)) for e in result["errors"]],
    )


@router.get("/{series_id}", response_model=RecurringTransactionResponse)
def get_recurring(
    series_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get a single recurring series."""
    series = db.query(RecurringTransaction).filter(
        RecurringTransaction.id == series_id,
        RecurringTransaction.user_id == user_id,
    ).first()
    if not series:
        raise HTTPException(status_code=404, detail="Recurring series not found")
    return series
