"""Shared test fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from datetime import date, datetime
from decimal import Decimal
import uuid

from app.database import Base
from app.dependencies import get_db, get_provider_client
from app.exceptions import ProviderUnavailableError
from app.main import app
from app.models.account import Account, LinkedItem
from app.models.transaction import Transaction
from app.models.recurring import RecurringTransaction
from app.services.provider_client import ProviderClient


USER_ID = "user-1"
AUTH_HEADERS = {"X-User-Id": USER_ID}


class FakeProviderClient(ProviderClient):
    """In-memory provider keyed by access token."""

    def __init__(self):
        self.transactions = {}
        self.streams = {}
        self.failing_tokens = set()
        self.failing_recurring_tokens = set()
        self.calls = []

    def get_transactions(self, access_token, start_date, end_date):
        self.calls.append(("transactions", access_token))
        if access_token in self.failing_tokens:
            raise ProviderUnavailableError(f"Provider error for {access_token}")
        return list(self.transactions.get(access_token, []))

    def get_recurring_streams(self, access_token, account_ids):
        self.calls.append(("recurring", access_token))
        if access_token in self.failing_recurring_tokens:
            raise ProviderUnavailableError(f"Recurring error for {access_token}")
        return self.streams.get(access_token, {"inflow_streams": [], "outflow_streams": []})


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test using in-memory SQLite."""
    # Use StaticPool to ensure all connections use the same in-memory database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create session
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def fake_provider():
    return FakeProviderClient()


@pytest.fixture(scope="function")
def client(db_session, fake_provider):
    """Create a test client with database and provider overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_provider_client] = lambda: fake_provider
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def linked_item(db_session):
    """Create a linked item that has never been synced."""
    item = LinkedItem(
        id=str(uuid.uuid4()),
        user_id=USER_ID,
        institution_name="Test Bank",
        access_token="token-a",
    )
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def sample_account(db_session, linked_item):
    """Create a sample checking account."""
    account = Account(
        id=str(uuid.uuid4()),
        user_id=USER_ID,
        linked_item_id=linked_item.id,
        provider_account_id="acc-a",
        name="Test Checking",
        mask="4221",
        account_type="depository",
        account_subtype="checking",
    )
    db_session.add(account)
    db_session.commit()
    db_session.refresh(account)
    return account


@pytest.fixture
def second_linked_account(db_session):
    """A second institution with its own account."""
    item = LinkedItem(
        id=str(uuid.uuid4()),
        user_id=USER_ID,
        institution_name="Other Bank",
        access_token="token-b",
    )
    db_session.add(item)
    db_session.flush()
    account = Account(
        id=str(uuid.uuid4()),
        user_id=USER_ID,
        linked_item_id=item.id,
        provider_account_id="acc-b",
        name="Other Card",
        account_type="credit",
    )
    db_session.add(account)
    db_session.commit()
    db_session.refresh(account)
    return account


def _add_transaction(db_session, account, provider_id, txn_date, amount, name, merchant_name=None, **kwargs):
    txn = Transaction(
        user_id=account.user_id,
        account_id=account.id,
        provider_transaction_id=provider_id,
        date=txn_date,
        amount=Decimal(str(amount)),
        name=name,
        merchant_name=merchant_name,
        **kwargs
    )
    db_session.add(txn)
    db_session.commit()
    db_session.refresh(txn)
    return txn


@pytest.fixture
def sample_transaction(db_session, sample_account):
    """Create a sample expense transaction."""
    return _add_transaction(
        db_session,
        sample_account,
        "txn-wf",
        date(2024, 1, 15),
        "50.00",
        "WHOLE FOODS #1234",
        merchant_name="Whole Foods",
        category=["Shops", "Supermarkets and Groceries"],
        primary_category="Shops",
    )


@pytest.fixture
def sample_recurring_series(db_session, sample_account):
    """Create a stored recurring series."""
    series = RecurringTransaction(
        id=str(uuid.uuid4()),
        user_id=USER_ID,
        account_id=sample_account.id,
        name="Netflix",
        normalized_name="netflix",
        merchant_name="Netflix",
        expected_amount=Decimal("15.49"),
        average_amount=Decimal("15.49"),
        frequency="monthly",
        start_date=date(2024, 1, 1),
        last_transaction_date=date(2024, 3, 3),
        next_due_date=date(2024, 4, 3),
        transaction_type="expense",
        is_subscription=True,
        is_active=True,
        total_occurrences=3,
        source="detected",
    )
    db_session.add(series)
    db_session.commit()
    db_session.refresh(series)
    return series


def _raw_transaction(txn_id, account_id, txn_date, amount, name, merchant_name=None, category=None, pending=False):
    return {
        "transaction_id": txn_id,
        "account_id": account_id,
        "date": txn_date,
        "amount": amount,
        "name": name,
        "merchant_name": merchant_name,
        "category": category,
        "pending": pending,
    }


@pytest.fixture
def auth_headers():
    return dict(AUTH_HEADERS)


@pytest.fixture
def make_transaction(db_session):
    """Factory for stored transactions."""
    def make(account, provider_id, txn_date, amount, name, merchant_name=None, **kwargs):
        return _add_transaction(db_session, account, provider_id, txn_date, amount, name, merchant_name, **kwargs)
    return make


@pytest.fixture
def make_raw_transaction():
    """Factory for provider-shaped transaction dicts."""
    return _raw_transaction
