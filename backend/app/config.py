"""
Application configuration using Pydantic settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_name: str = "Cadence"
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./data/db.sqlite"

    # Plaid
    plaid_client_id: Optional[str] = None
    plaid_secret: Optional[str] = None
    plaid_env: str = "sandbox"  # sandbox, production
    provider_timeout_seconds: float = 30.0

    # Sync
    sync_cooldown_hours: int = 24
    transaction_sync_days: int = 30

    # Recurring detection
    recurring_lookback_days: Optional[int] = None  # None: bounded by recurring_lookback_limit only
    recurring_lookback_limit: int = 500
    subscription_amount_threshold: float = 100.0

    # Keyword data overrides (JSON files)
    category_rules_path: Optional[str] = None
    subscription_keywords_path: Optional[str] = None

    # Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    frontend_url: str = "http://localhost:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )


# Global settings instance
settings = Settings()
