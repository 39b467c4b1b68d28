"""Application configuration via pydantic-settings."""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Dict, List, Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Baytup"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "baytup"
    postgres_password: str = Field(default="baytup_secret")
    postgres_db: str = "baytup"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    database_url_override: Optional[str] = None

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @computed_field
    @property
    def sync_database_url(self) -> str:
        """Sync PostgreSQL connection URL for Alembic."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # JWT Authentication (tokens are issued by the identity service)
    jwt_secret_key: str = Field(default="your-super-secret-key-change-in-production")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # Encryption (bank account numbers)
    encryption_key: str = Field(default="your-32-byte-encryption-key-here")

    # Payment Gateways
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    slickpay_api_key: Optional[str] = None
    slickpay_use_prod: bool = False
    slickpay_webhook_secret: str = Field(default="baytup-webhook-secret")
    payment_return_url: str = "http://localhost:3000/payment/return"
    api_base_url: str = "http://localhost:8000"
    gateway_timeout_seconds: float = 30.0
    currency_gateways: Dict[str, str] = {"EUR": "stripe", "DZD": "slickpay"}

    @computed_field
    @property
    def slickpay_base_url(self) -> str:
        """SlickPay API base URL."""
        if self.slickpay_use_prod:
            return "https://prodapi.slick-pay.com/api/v2"
        return "https://devapi.slick-pay.com/api/v2"

    # Rate Limiting
    rate_limit_per_minute: int = 100

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    # Fees (guest-side service fee, host-side commission)
    guest_service_fee_rate: Decimal = Decimal("0.08")
    host_commission_rate: Decimal = Decimal("0.03")
    # Smallest amount a rail can collect, in minor units (SlickPay bills whole dinars)
    collection_units: Dict[str, int] = {"DZD": 100}

    # Booking lifecycle
    host_response_window_hours: int = 24
    host_response_reminder_hours: int = 12

    # Refunds
    refund_grace_period_hours: int = 48
    refund_grace_min_days_before_check_in: int = 14
    full_refund_threshold: Decimal = Decimal("0.99")

    # Escrow
    escrow_auto_release_hours: int = 24

    # Payout (minor units)
    payout_minimum_amounts: Dict[str, int] = {"DZD": 100000, "EUR": 1000}
    payout_estimated_arrival_days: int = 5


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
