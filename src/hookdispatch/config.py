"""Configuration management for hookdispatch."""

import logging
from datetime import timedelta
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

ONE_MONTH_SECONDS = 60 * 60 * 24 * 30


class DispatcherConfig(BaseModel):
    """Retry, timeout and retention policy for the dispatcher.

    Backoff before attempt ``n + 1`` is ``initial_backoff ** n`` milliseconds,
    where ``n`` is the number of attempts recorded so far. With the defaults
    the delays are 10, 100, 1000 and 10000 ms.

    Attributes:
        initial_backoff: Base of the exponential backoff, in milliseconds.
        max_attempts: Failed attempts after which the webhook is FAILED.
        attempt_timeout_seconds: Bound on one outbound POST.
        retention_seconds: How long a terminal record is kept before cleanup.
        token_ttl_seconds: Lifetime of the signed delivery token.
    """

    initial_backoff: int = Field(
        default=10,
        ge=2,
        le=1000,
        description="Backoff base in milliseconds (delay = base ** attempts)",
    )
    max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum delivery attempts before giving up",
    )
    attempt_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="Timeout for a single delivery attempt",
    )
    retention_seconds: int = Field(
        default=ONE_MONTH_SECONDS,
        ge=0,
        description="Seconds a terminal record is retained before deletion",
    )
    token_ttl_seconds: int = Field(
        default=30,
        ge=1,
        le=3600,
        description="Lifetime of the bearer token sent with each attempt",
    )

    @property
    def retention(self) -> timedelta:
        return timedelta(seconds=self.retention_seconds)

    @property
    def attempt_timeout(self) -> timedelta:
        return timedelta(seconds=self.attempt_timeout_seconds)


class Settings(BaseSettings):
    """hookdispatch configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKDISPATCH_ prefix. For example:
        HOOKDISPATCH_STORAGE_BACKEND=qdrant
        HOOKDISPATCH_DISPATCHER__MAX_ATTEMPTS=8

    Security Notes:
        - In production (HOOKDISPATCH_ENV=production) a private key is required
        - The in-memory store is refused in production since it is not durable
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format: json for production, text for development",
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Bind address for the API")
    port: int = Field(default=8787, ge=1, le=65535, description="Bind port for the API")

    # Storage
    storage_backend: Literal["memory", "qdrant"] = Field(
        default="memory",
        description="Durable store: 'memory' (non-durable, dev/test) or 'qdrant'",
    )
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="hookdispatch",
        description="Prefix for Qdrant collection names",
    )

    # Signing
    private_key: SecretStr | None = Field(
        default=None,
        description="JWK (JSON) holding the RSA private key used to sign delivery tokens",
    )
    token_issuer: str = Field(
        default="webhookdispatcher",
        description="Issuer claim placed in delivery tokens",
    )

    # Scheduling
    scheduler_workers: int = Field(
        default=4,
        ge=1,
        le=256,
        description="Concurrent alarm handlers in the in-process scheduler",
    )
    alarm_retry_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=3600.0,
        description="Delay before re-firing an alarm whose handler raised",
    )

    dispatcher: DispatcherConfig = Field(
        default_factory=DispatcherConfig,
        description="Retry, timeout and retention policy",
    )

    model_config = {
        "env_prefix": "HOOKDISPATCH_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Refuse configurations that cannot deliver durably in production."""
        if self.env != "production":
            if self.private_key is None:
                logger.warning("No private key configured; delivery attempts will fail to sign")
            return self
        if self.private_key is None:
            raise ValueError("HOOKDISPATCH_PRIVATE_KEY must be set in production")
        if self.storage_backend == "memory":
            raise ValueError(
                "HOOKDISPATCH_STORAGE_BACKEND=memory is not durable and cannot be used in production"
            )
        return self


# Global settings instance
settings = Settings()
