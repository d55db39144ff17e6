"""Application settings and configuration.

This module defines all configuration options for the mintgate service.
Settings are loaded from environment variables with sensible defaults.
The settings object is built once at process start; components receive the
frozen config dataclasses derived from it rather than reading it directly.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="mintgate", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Key-value ledger backend
    kv_backend: Literal["redis", "memory"] = Field(default="redis", alias="KV_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    events_key: str = Field(default="events", alias="EVENTS_KEY")
    mint_lock_ttl_seconds: int = Field(default=60, alias="MINT_LOCK_TTL_SECONDS")
    mint_record_ttl_seconds: int = Field(
        default=60 * 60 * 24 * 365,
        alias="MINT_RECORD_TTL_SECONDS",
    )

    # Wallet signature verification
    auth_message_header: str = Field(default="SXT Event Mint", alias="AUTH_MESSAGE_HEADER")
    signature_bind_public_key: bool = Field(default=True, alias="SIGNATURE_BIND_PUBLIC_KEY")

    # Sponsor delegation and request deadlines (seconds)
    mint_sponsor_api_url: str | None = Field(default=None, alias="MINT_SPONSOR_API_URL")
    sponsor_timeout_seconds: float = Field(default=20.0, alias="SPONSOR_TIMEOUT_SECONDS")
    mint_request_timeout_seconds: float = Field(
        default=25.0,
        alias="MINT_REQUEST_TIMEOUT_SECONDS",
    )
    mint_bookkeeping_timeout_seconds: float = Field(
        default=4.0,
        alias="MINT_BOOKKEEPING_TIMEOUT_SECONDS",
    )
    platform_timeout_seconds: float = Field(default=30.0, alias="PLATFORM_TIMEOUT_SECONDS")

    # Walrus blob storage
    walrus_publisher_base: str = Field(
        default="https://publisher.walrus-testnet.walrus.space",
        alias="WALRUS_PUBLISHER_BASE",
    )
    walrus_aggregator_base: str = Field(
        default="https://aggregator.walrus-testnet.walrus.space",
        alias="WALRUS_AGGREGATOR_BASE",
    )
    walrus_default_epochs: int = Field(default=5, alias="WALRUS_DEFAULT_EPOCHS")
    walrus_default_permanent: bool = Field(default=False, alias="WALRUS_DEFAULT_PERMANENT")
    walrus_max_blob_bytes: int = Field(default=10 * 1024 * 1024, alias="WALRUS_MAX_BLOB_BYTES")
    walrus_max_attempts: int = Field(default=3, alias="WALRUS_MAX_ATTEMPTS")
    walrus_backoff_base_seconds: float = Field(default=0.5, alias="WALRUS_BACKOFF_BASE_SECONDS")
    walrus_attempt_timeout_seconds: float = Field(
        default=15.0,
        alias="WALRUS_ATTEMPT_TIMEOUT_SECONDS",
    )
    walrus_total_timeout_seconds: float = Field(
        default=60.0,
        alias="WALRUS_TOTAL_TIMEOUT_SECONDS",
    )
    walrus_publisher_jwt_secret: str | None = Field(
        default=None,
        alias="WALRUS_PUBLISHER_JWT_SECRET",
    )
    walrus_jwt_ttl_seconds: int = Field(default=180, alias="WALRUS_JWT_TTL_SECONDS")
    walrus_max_epochs: int | None = Field(default=None, alias="WALRUS_MAX_EPOCHS")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _check_deadlines(self) -> "Settings":
        """Keep sponsor deadline < request deadline < platform limit."""
        if not self.sponsor_timeout_seconds < self.mint_request_timeout_seconds:
            raise ValueError("SPONSOR_TIMEOUT_SECONDS must be below MINT_REQUEST_TIMEOUT_SECONDS")
        if not self.mint_request_timeout_seconds < self.platform_timeout_seconds:
            raise ValueError("MINT_REQUEST_TIMEOUT_SECONDS must be below PLATFORM_TIMEOUT_SECONDS")
        if (
            self.mint_request_timeout_seconds + self.mint_bookkeeping_timeout_seconds
            >= self.platform_timeout_seconds
        ):
            raise ValueError(
                "MINT_REQUEST_TIMEOUT_SECONDS + MINT_BOOKKEEPING_TIMEOUT_SECONDS must be below "
                "PLATFORM_TIMEOUT_SECONDS"
            )
        if self.mint_lock_ttl_seconds <= self.mint_request_timeout_seconds:
            raise ValueError("MINT_LOCK_TTL_SECONDS must exceed MINT_REQUEST_TIMEOUT_SECONDS")
        if self.walrus_attempt_timeout_seconds >= self.walrus_total_timeout_seconds:
            raise ValueError(
                "WALRUS_ATTEMPT_TIMEOUT_SECONDS must be below WALRUS_TOTAL_TIMEOUT_SECONDS"
            )
        if self.walrus_max_attempts < 1:
            raise ValueError("WALRUS_MAX_ATTEMPTS must be at least 1")
        return self


settings = Settings()
