"""
Core configuration module for the Content Gateway.

This module provides centralized configuration management using Pydantic Settings.
Settings are read once from the process environment (and an optional .env file)
and passed explicitly into every component constructor. Components never read
the environment themselves.

Environment variable names follow the deployment conventions of the hosting
platform (CLERK_SECRET_KEY, DATABASE_URL, UPSTASH_REDIS_URL, GEMINI_API_KEY, PORT).

Reference:
- GUIDELINES: Sinha pp. 193-195 - Pydantic BaseSettings pattern
"""

import logging
from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


DEFAULT_UPSTREAM_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-3-pro-preview"
DEFAULT_CLERK_API_URL = "https://api.clerk.com/v1"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Missing credentials never prevent startup: the identity provider key and
    upstream API key degrade to warnings and runtime errors, the database and
    counter store URLs degrade to disabled logging and fail-open limiting.
    """

    # =========================================================================
    # Service Configuration
    # =========================================================================
    service_name: str = Field(
        default="content-gateway",
        description="Name of the service for logging and identification",
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port the service listens on",
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    cors_origins: str = Field(
        default="",
        description="Comma-separated CORS origins (development allows all)",
    )

    # =========================================================================
    # Identity Provider (Clerk)
    # =========================================================================
    clerk_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Clerk secret key used to fetch the instance JWKS",
    )
    clerk_api_url: str = Field(
        default=DEFAULT_CLERK_API_URL,
        description="Clerk Backend API base URL",
    )
    clerk_authorized_parties: str = Field(
        default="",
        description="Comma-separated allow-list for the azp claim (empty disables the check)",
    )
    clerk_jwks_cache_ttl_seconds: int = Field(
        default=3600,
        ge=0,
        description="Seconds before cached signing keys are refetched",
    )
    clerk_clock_skew_seconds: int = Field(
        default=5,
        ge=0,
        le=300,
        description="Leeway applied to exp/nbf/iat claim checks",
    )

    # =========================================================================
    # Usage Log Store (PostgreSQL)
    # =========================================================================
    database_url: SecretStr = Field(
        default=SecretStr(""),
        description="PostgreSQL connection string for the request log table",
    )
    usage_log_queue_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of pending usage log entries",
    )
    usage_log_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Background workers writing usage log entries",
    )
    usage_log_drain_timeout_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Seconds to wait for pending log writes on shutdown",
    )
    usage_log_connect_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Seconds to wait for a database connection before a write fails",
    )

    # =========================================================================
    # Quota Counter (Redis)
    # =========================================================================
    redis_url: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("redis_url", "upstash_redis_url"),
        description="Redis URL for the shared rate-limit counters",
    )
    rate_limit_requests: int = Field(
        default=10,
        ge=1,
        description="Requests allowed per identity per window",
    )
    rate_limit_window_seconds: int = Field(
        default=60,
        ge=1,
        description="Fixed window length in seconds",
    )
    rate_limit_fail_open: bool = Field(
        default=True,
        description="Allow traffic when the counter store is unavailable",
    )

    # =========================================================================
    # Upstream (Gemini)
    # =========================================================================
    gemini_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="API key appended to upstream requests",
    )
    upstream_base_url: str = Field(
        default=DEFAULT_UPSTREAM_BASE_URL,
        description="Base URL of the upstream models collection",
    )
    default_model: str = Field(
        default=DEFAULT_MODEL,
        min_length=1,
        description="Model used when the request does not name one",
    )
    upstream_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Upstream call timeout; None waits indefinitely",
    )

    model_config = {
        "env_prefix": "",
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
        "populate_by_name": True,
    }

    # =========================================================================
    # Field Validators
    # =========================================================================
    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("upstream_base_url", "clerk_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Base URLs are joined with '/', so drop any trailing slash."""
        return v.rstrip("/")

    # =========================================================================
    # Derived Values
    # =========================================================================
    @property
    def authorized_parties(self) -> list[str]:
        """Parsed azp allow-list."""
        return [p.strip() for p in self.clerk_authorized_parties.split(",") if p.strip()]

    @property
    def cors_origin_list(self) -> list[str]:
        """
        CORS allowed origins based on environment.

        - Development: Allow all origins (["*"])
        - Staging/Production: CORS_ORIGINS (comma-separated), empty blocks all
        """
        if self.environment == "development":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def warn_missing_configuration(settings: Settings) -> list[str]:
    """
    Log a warning for every missing credential or store URL.

    Returns:
        Names of the missing settings, in a stable order.
    """
    missing = []
    if not settings.clerk_secret_key.get_secret_value():
        logger.warning("CLERK_SECRET_KEY is not set; every protected request will be rejected")
        missing.append("clerk_secret_key")
    if not settings.database_url.get_secret_value():
        logger.warning("DATABASE_URL not set, usage logging disabled")
        missing.append("database_url")
    if not settings.redis_url.get_secret_value():
        logger.warning("UPSTASH_REDIS_URL not set, rate limiting disabled")
        missing.append("redis_url")
    if not settings.gemini_api_key.get_secret_value():
        logger.warning("GEMINI_API_KEY not set; generate-content requests will fail with 500")
        missing.append("gemini_api_key")
    return missing


@lru_cache
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Uses functools.lru_cache to ensure only one Settings instance is created.

    Returns:
        Settings: The application settings instance.
    """
    return Settings()
