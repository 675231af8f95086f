from functools import lru_cache
from typing import Optional

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralised application settings, sourced from environment variables or .env."""

    app_name: str = Field(default="FinanceBot")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    database_url: str = Field(alias="DATABASE_URL")
    direct_database_url: Optional[str] = Field(
        default=None,
        alias="DIRECT_DATABASE_URL",
        description="Optional direct Postgres connection string used for running migrations.",
    )
    auto_run_migrations: bool = Field(default=False, alias="AUTO_RUN_MIGRATIONS")
    telegram_bot_token: Optional[str] = Field(default=None, alias="TELEGRAM_BOT_TOKEN")
    telegram_webhook_secret: Optional[str] = Field(
        default=None, alias="TELEGRAM_WEBHOOK_SECRET"
    )
    backend_base_url: Optional[AnyHttpUrl] = Field(
        default=None,
        alias="BACKEND_BASE_URL",
        description="The public URL where FastAPI is reachable (used by Telegram webhooks).",
    )
    telegram_register_webhook_on_start: bool = Field(
        default=False, alias="TELEGRAM_REGISTER_WEBHOOK_ON_START"
    )
    auth_session_ttl_seconds: int = Field(
        default=10 * 60,
        alias="AUTH_SESSION_TTL_SECONDS",
        description="Lifetime of a pending email/password challenge (in seconds).",
        ge=60,
    )
    auth_password_retry_limit: int = Field(
        default=3,
        alias="AUTH_PASSWORD_RETRY_LIMIT",
        description="Password retries allowed after the first failure before the session is dropped.",
        ge=0,
    )
    ledger_balance_retry_limit: int = Field(
        default=5,
        alias="LEDGER_BALANCE_RETRY_LIMIT",
        description="Compare-and-swap attempts for a bank balance update.",
        ge=1,
    )
    default_currency: str = Field(default="NPR", alias="DEFAULT_CURRENCY", min_length=3, max_length=3)
    storage_url: Optional[AnyHttpUrl] = Field(
        default=None,
        alias="STORAGE_URL",
        description="Base URL of the Supabase-compatible storage API used for receipt images.",
    )
    storage_service_key: Optional[str] = Field(default=None, alias="STORAGE_SERVICE_KEY")
    storage_bucket: str = Field(default="transaction-images", alias="STORAGE_BUCKET")
    statement_transaction_limit: int = Field(default=50, alias="STATEMENT_TRANSACTION_LIMIT", ge=1)
    statement_loan_limit: int = Field(default=20, alias="STATEMENT_LOAN_LIMIT", ge=1)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached accessor so imports share a single settings instance."""
    return Settings()  # type: ignore[call-arg]
