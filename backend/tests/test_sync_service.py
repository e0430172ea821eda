"""Tests for provider sync and the manual sync cooldown."""

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal

from app.exceptions import ProviderUnavailableError, RateLimitedError
from app.models.recurring import RecurringTransaction
from app.models.transaction import Transaction
from app.services.recurring_service import DetectionConfig
from app.services.sync_service import (
    check_sync_cooldown,
    get_last_synced_at,
    sync_recurring,
    sync_user,
)


NOW = datetime(2024, 3, 10, 12, 0)
CONFIG = DetectionConfig(lookback_days=None, lookback_limit=None)


def outflow_stream(account_id="acc-a", **overrides):
    record = {
        "stream_id": "s-1",
        "account_id": account_id,
        "description": "SPOTIFY USA",
        "merchant_name": "Spotify",
        "last_amount": {"amount": 11.99},
        "average_amount": {"amount": 11.99},
        "frequency": "MONTHLY",
        "first_date": "2023-06-01",
        "last_date": "2024-03-01",
        "status": "MATURE",
        "transaction_ids": ["t1", "t2"],
        "category": ["Service", "Subscription"],
    }
    record.update(overrides)
    return record


class TestSyncCooldown:
    """Manual syncs are limited to one per cooldown window."""

    def test_never_synced(self, db_session, linked_item):
        check_sync_cooldown(db_session, linked_item.user_id, now=NOW)

    def test_blocked_within_cooldown(self, db_session, linked_item):
        linked_item.last_synced_at = NOW - timedelta(hours=1)
        db_session.commit()

        with pytest.raises(RateLimitedError) as exc_info:
            check_sync_cooldown(db_session, linked_item.user_id, now=NOW, cooldown=timedelta(hours=24))

        error = exc_info.value
        assert error.retry_after == timedelta(hours=23)
        assert error.next_sync_available == NOW + timedelta(hours=23)
        assert error.hours_remaining == 23
        assert error.minutes_remaining == 0
        assert error.message == "You can sync again in 23 hours and 0 minutes"

    def test_partial_minutes_round_up(self, db_session, linked_item):
        linked_item.last_synced_at = NOW - timedelta(hours=22, minutes=30, seconds=20)
        db_session.commit()

        with pytest.raises(RateLimitedError) as exc_info:
            check_sync_cooldown(db_session, linked_item.user_id, now=NOW, cooldown=timedelta(hours=24))

        assert exc_info.value.hours_remaining == 1
        assert exc_info.value.minutes_remaining == 30

    def test_allowed_after_cooldown(self, db_session, linked_item):
        linked_item.last_synced_at = NOW - timedelta(hours=24)
        db_session.commit()

        check_sync_cooldown(db_session, linked_item.user_id, now=NOW, cooldown=timedelta(hours=24))

    def test_uses_most_recent_item(self, db_session, linked_item, second_linked_account):
        linked_item.last_synced_at = NOW - timedelta(days=3)
        second_linked_account.linked_item.last_synced_at = NOW - timedelta(hours=2)
        db_session.commit()

        assert get_last_synced_at(db_session, linked_item.user_id) == NOW - timedelta(hours=2)
        with pytest.raises(RateLimitedError):
            check_sync_cooldown(db_session, linked_item.user_id, now=NOW)

    def test_other_users_do_not_count(self, db_session, linked_item):
        linked_item.last_synced_at = NOW - timedelta(hours=1)
        db_session.commit()

        check_sync_cooldown(db_session, "someone-else", now=NOW)


class TestSyncUser:
    """Full manual sync across linked items."""

    def test_no_linked_items(self, db_session, fake_provider):
        with pytest.raises(ValueError):
            sync_user(db_session, "nobody", fake_provider, CONFIG, now=NOW)

    def test_stores_transactions(self, db_session, sample_account, fake_provider, make_raw_transaction):
        fake_provider.transactions["token-a"] = [
            make_raw_transaction("p-1", "acc-a", "2024-03-01", 15.49, "NETFLIX.COM"),
            make_raw_transaction("p-2", "acc-a", "2024-03-02", -2000, "ACME PAYROLL"),
            make_raw_transaction("p-3", "acc-unknown", "2024-03-02", 5, "ELSEWHERE"),
        ]

        result = sync_user(db_session, sample_account.user_id, fake_provider, CONFIG, now=NOW)

        assert result.synced_count == 2
        assert result.items_synced == 1
        assert result.errors == []
        rows = {t.provider_transaction_id: t for t in db_session.query(Transaction).all()}
        assert set(rows) == {"p-1", "p-2"}
        assert rows["p-1"].transaction_type == "expense"
        assert rows["p-1"].amount == Decimal("15.49")
        assert rows["p-2"].transaction_type == "income"
        db_session.refresh(sample_account.linked_item)
        assert sample_account.linked_item.last_synced_at == NOW

    def test_resync_updates_in_place(self, db_session, sample_account, fake_provider, make_raw_transaction):
        fake_provider.transactions["token-a"] = [
            make_raw_transaction("p-1", "acc-a", "2024-03-01", 15.49, "NETFLIX.COM", pending=True),
        ]
        sync_user(db_session, sample_account.user_id, fake_provider, CONFIG, now=NOW)

        fake_provider.transactions["token-a"] = [
            make_raw_transaction("p-1", "acc-a", "2024-03-01", 15.99, "NETFLIX.COM", pending=False),
        ]
        sync_user(db_session, sample_account.user_id, fake_provider, CONFIG, now=NOW, enforce_cooldown=False)

        row = db_session.query(Transaction).one()
        assert row.amount == Decimal("15.99")
        assert row.pending is False

    def test_categorizes_uncategorized(self, db_session, sample_account, fake_provider, make_raw_transaction):
        fake_provider.transactions["token-a"] = [
            make_raw_transaction("p-1", "acc-a", "2024-03-01", 15.49, "NETFLIX.COM"),
            make_raw_transaction("p-2", "acc-a", "2024-03-02", 42, "WHOLE FOODS", category=["Shops"]),
        ]

        sync_user(db_session, sample_account.user_id, fake_provider, CONFIG, now=NOW)

        rows = {t.provider_transaction_id: t for t in db_session.query(Transaction).all()}
        assert rows["p-1"].user_category == "Subscriptions"
        assert rows["p-2"].user_category is None
        assert rows["p-2"].primary_category == "Shops"

    def test_keeps_user_category(self, db_session, sample_account, fake_provider, make_transaction, make_raw_transaction):
        make_transaction(sample_account, "p-1", date(2024, 3, 1), "15.49", "NETFLIX.COM", user_category="Entertainment")
        fake_provider.transactions["token-a"] = [
            make_raw_transaction("p-1", "acc-a", "2024-03-01", 15.49, "NETFLIX.COM"),
        ]

        sync_user(db_session, sample_account.user_id, fake_provider, CONFIG, now=NOW)

        assert db_session.query(Transaction).one().user_category == "Entertainment"

    def test_skips_malformed(self, db_session, sample_account, fake_provider, make_raw_transaction):
        fake_provider.transactions["token-a"] = [
            make_raw_transaction("p-1", "acc-a", "2024-03-01", None, "BROKEN"),
            make_raw_transaction("p-2", "acc-a", "2024-03-02", 9.99, "HULU"),
        ]

        result = sync_user(db_session, sample_account.user_id, fake_provider, CONFIG, now=NOW)

        assert result.synced_count == 1
        assert result.skipped_count == 1
        assert result.errors == []

    def test_rate_limited(self, db_session, sample_account, fake_provider):
        sample_account.linked_item.last_synced_at = NOW - timedelta(hours=1)
        db_session.commit()

        with pytest.raises(RateLimitedError):
            sync_user(db_session, sample_account.user_id, fake_provider, CONFIG, now=NOW)
        assert fake_provider.calls == []

    def test_failing_item_isolated(
        self, db_session, sample_account, second_linked_account, fake_provider, make_raw_transaction
    ):
        fake_provider.failing_tokens.add("token-a")
        fake_provider.transactions["token-b"] = [
            make_raw_transaction("p-9", "acc-b", "2024-03-01", 25, "SHELL OIL"),
        ]

        result = sync_user(db_session, sample_account.user_id, fake_provider, CONFIG, now=NOW)

        assert result.synced_count == 1
        assert result.items_synced == 1
        assert len(result.errors) == 1
        assert result.errors[0].item_id == sample_account.linked_item_id
        assert "token-a" in result.errors[0].reason
        db_session.refresh(sample_account.linked_item)
        db_session.refresh(second_linked_account.linked_item)
        assert sample_account.linked_item.last_synced_at is None
        assert second_linked_account.linked_item.last_synced_at == NOW

    def test_decrypt_failure_isolated(self, db_session, sample_account, second_linked_account, fake_provider):
        def decrypt(token):
            if token == "token-a":
                raise ValueError("bad key")
            return token

        result = sync_user(
            db_session, sample_account.user_id, fake_provider, CONFIG, decrypt_token=decrypt, now=NOW
        )

        assert result.items_synced == 1
        assert len(result.errors) == 1
        assert "decrypt" in result.errors[0].reason
        assert ("transactions", "token-a") not in fake_provider.calls
        assert ("transactions", "token-b") in fake_provider.calls

    def test_provider_streams_stored(self, db_session, sample_account, fake_provider):
        fake_provider.streams["token-a"] = {"inflow_streams": [], "outflow_streams": [outflow_stream()]}

        result = sync_user(db_session, sample_account.user_id, fake_provider, CONFIG, now=NOW)

        assert result.recurring_count == 1
        series = db_session.query(RecurringTransaction).one()
        assert series.normalized_name == "spotify"
        assert series.source == "provider"
        assert series.account_id == sample_account.id
        assert series.next_due_date == date(2024, 4, 1)

    def test_detects_when_provider_has_no_streams(self, db_session, sample_account, fake_provider, make_raw_transaction):
        fake_provider.transactions["token-a"] = [
            make_raw_transaction("g-1", "acc-a", "2024-01-05", 30, "IRON GYM"),
            make_raw_transaction("g-2", "acc-a", "2024-02-05", 30, "IRON GYM"),
            make_raw_transaction("g-3", "acc-a", "2024-03-05", 30, "IRON GYM"),
        ]

        result = sync_user(db_session, sample_account.user_id, fake_provider, CONFIG, now=NOW)

        assert result.recurring_count == 1
        series = db_session.query(RecurringTransaction).one()
        assert series.source == "detected"
        assert series.frequency == "monthly"

    def test_recurring_failure_reported(self, db_session, sample_account, fake_provider, make_raw_transaction):
        fake_provider.failing_recurring_tokens.add("token-a")
        fake_provider.transactions["token-a"] = [
            make_raw_transaction("p-1", "acc-a", "2024-03-01", 15.49, "NETFLIX.COM"),
        ]

        result = sync_user(db_session, sample_account.user_id, fake_provider, CONFIG, now=NOW)

        assert result.synced_count == 1
        assert result.items_synced == 1
        assert len(result.errors) == 1
        assert db_session.query(RecurringTransaction).count() == 0
        assert db_session.query(Transaction).count() == 1

    def test_message(self, db_session, sample_account, fake_provider, make_raw_transaction):
        fake_provider.transactions["token-a"] = [
            make_raw_transaction("p-1", "acc-a", "2024-03-01", 15.49, "NETFLIX.COM"),
        ]
        result = sync_user(db_session, sample_account.user_id, fake_provider, CONFIG, now=NOW)
        assert result.message == "Successfully synced 1 transaction and recurring charges"


class TestSyncRecurring:
    """Recurring refresh without pulling transactions."""

    def test_without_provider_detects_locally(self, db_session, sample_account, make_transaction):
        make_transaction(sample_account, "g-1", date(2024, 2, 5), "30.00", "IRON GYM")
        make_transaction(sample_account, "g-2", date(2024, 3, 5), "30.00", "IRON GYM")

        result = sync_recurring(db_session, sample_account.user_id, None, CONFIG, today=NOW.date())

        assert result["series_count"] == 1
        assert result["errors"] == []

    def test_uses_provider_streams(self, db_session, sample_account, fake_provider):
        fake_provider.streams["token-a"] = {"inflow_streams": [], "outflow_streams": [outflow_stream()]}

        result = sync_recurring(db_session, sample_account.user_id, fake_provider, CONFIG, today=NOW.date())

        assert result["series_count"] == 1
        assert ("transactions", "token-a") not in fake_provider.calls

    def test_failure_isolated(self, db_session, sample_account, second_linked_account, fake_provider):
        fake_provider.failing_recurring_tokens.add("token-a")
        fake_provider.streams["token-b"] = {
            "inflow_streams": [],
            "outflow_streams": [outflow_stream(account_id="acc-b")],
        }

        result = sync_recurring(db_session, sample_account.user_id, fake_provider, CONFIG, today=NOW.date())

        assert result["series_count"] == 1
        assert len(result["errors"]) == 1
        series = db_session.query(RecurringTransaction).one()
        assert series.account_id == second_linked_account.id

    def test_does_not_touch_cooldown(self, db_session, sample_account, fake_provider):
        sync_recurring(db_session, sample_account.user_id, fake_provider, CONFIG, today=NOW.date())
        assert get_last_synced_at(db_session, sample_account.user_id) is None
