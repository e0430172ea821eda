"""
Domain errors for the sync and recurring-detection pipeline.

None of these are fatal to the process: each one is scoped to a single
record, linked item or request.
"""

from datetime import datetime, timedelta
from typing import Optional


class MalformedRecordError(ValueError):
    """A raw provider record is missing a required field (amount or date)."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id


class ProviderUnavailableError(Exception):
    """The aggregation provider call failed or its access token could not be decrypted."""

    def __init__(self, message: str, item_id: Optional[str] = None):
        super().__init__(message)
        self.item_id = item_id


class RateLimitedError(Exception):
    """A manual sync was requested before the cooldown elapsed."""

    def __init__(self, last_synced_at: datetime, cooldown: timedelta, now: datetime):
        self.last_synced_at = last_synced_at
        self.next_sync_available = last_synced_at + cooldown
        self.retry_after = max(self.next_sync_available - now, timedelta(0))
        super().__init__(self.message)

    @property
    def total_minutes_remaining(self) -> int:
        # Rounded up so "0 hours and 0 minutes" is never reported while still blocked
        return -(-int(self.retry_after.total_seconds()) // 60)

    @property
    def hours_remaining(self) -> int:
        return self.total_minutes_remaining // 60

    @property
    def minutes_remaining(self) -> int:
        return self.total_minutes_remaining % 60

    @property
    def message(self) -> str:
        return (
            f"You can sync again in {self.hours_remaining} hours "
            f"and {self.minutes_remaining} minutes"
        )
