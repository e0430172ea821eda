"""
FastAPI dependencies.
"""

import logging
from typing import Generator, Optional, Sequence

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.exceptions import ProviderUnavailableError
from app.services.categorization_service import CategoryRule, load_category_rules
from app.services.provider_client import PlaidProviderClient, ProviderClient
from app.services.sync_service import TokenDecryptor, plain_token

logger = logging.getLogger(__name__)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database sessions.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity, resolved by the authentication layer in front of this service."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


def get_provider_client() -> Optional[ProviderClient]:
    """Plaid client, or None when credentials are not configured."""
    try:
        return PlaidProviderClient.from_settings(settings)
    except ProviderUnavailableError as e:
        logger.warning(f"Provider client unavailable: {e}")
        return None


def get_category_rules() -> Sequence[CategoryRule]:
    return load_category_rules(settings.category_rules_path)


def get_token_decryptor() -> TokenDecryptor:
    return plain_token
