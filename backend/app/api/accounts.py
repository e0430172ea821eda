"""
Account API endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.dependencies import get_db, get_current_user_id
from app.models import Account
from app.schemas.account import AccountResponse, AccountList

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("", response_model=AccountList)
def list_accounts(
    skip: int = 0,
    limit: int = 100,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List the caller's active linked accounts."""
    query = db.query(Account).filter(Account.user_id == user_id, Account.is_active == True)
    accounts = query.order_by(Account.name).offset(skip).limit(limit).all()

    return AccountList(
        items=accounts,
        total=query.count()
    )


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get a specific account."""
    account = db.query(Account).filter(Account.id == account_id, Account.user_id == user_id).first()
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return account
