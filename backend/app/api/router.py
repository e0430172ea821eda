"""
Main API router.
"""

from fastapi import APIRouter
from app.api import accounts, transactions, recurring

api_router = APIRouter()

api_router.include_router(accounts.router)
api_router.include_router(transactions.router)
api_router.include_router(recurring.router)
