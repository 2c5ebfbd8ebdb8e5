"""Settings for stackhand services.

Every process (API, worker, CLI) reads the same settings from the
environment or a local ``.env`` file. Required fields fail fast on startup.

Usage:
    from stackhand.config import get_settings

    settings = get_settings()
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Required ===

    database_url: str = Field(
        ...,
        description="Database connection URL",
        examples=["postgresql+asyncpg://user:pass@db:5432/stackhand"],
    )
    redis_url: str = Field(
        ...,
        description="Redis connection URL",
        examples=["redis://redis:6379"],
    )
    callback_signing_key: str = Field(
        ...,
        min_length=16,
        description="Secret used to sign bootstrap callback URLs",
    )

    # === Logging ===

    service_name: str = Field(default="stackhand", description="Service name for logs")
    log_format: Literal["json", "console"] = Field(default="console")
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")

    # === Remote execution ===

    ssh_key_path: str = Field(default="~/.ssh/id_ed25519")
    managed_user: str = Field(
        default="stackhand",
        description="Non-root account created on every managed server",
    )
    ssh_connect_timeout: int = Field(default=10, ge=1)
    remote_command_timeout: int = Field(
        default=570,
        ge=1,
        description="Upper bound in seconds for a single remote command",
    )

    # === Lifecycle jobs ===

    lifecycle_lock_timeout: int = Field(
        default=900,
        ge=1,
        description="Seconds before a per-resource job lock expires on its own",
    )

    # === Bootstrap callback ===

    public_url: str = Field(
        default="http://localhost:8000",
        description="Externally reachable base URL used in signed callback URLs",
    )
    callback_url_ttl: int = Field(default=3600, ge=60)

    # === Scheduled tasks ===

    scheduler_max_timeout: int = Field(default=3600, ge=1)
    scheduler_max_tasks: int = Field(default=50, ge=1)

    # === Base stack ===

    default_php_version: str = Field(default="8.3")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
