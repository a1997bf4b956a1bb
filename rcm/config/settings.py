"""
Application settings for the payment posting service.

Settings are read from the environment (and `.env`, loaded by
`rcm.core.setup.setup_application`) through pydantic-settings. Getter
functions are the supported way for other modules to read a value so tests
can patch a single place.

**Environment variables:**
- `JWT_SECRET_KEY`, `JWT_ALGORITHM`, `JWT_ACCESS_TOKEN_EXPIRE_MINUTES`
- `REQUIRE_AUTH`: when false, the `X-Operator-Id` header identifies the caller
- `CORS_ORIGINS`: comma-separated list of allowed origins
- `STATS_WINDOW_DAYS`: trailing window for posting statistics (default 30)
- `MAX_UPLOAD_BYTES`: largest accepted ERA upload (default 20MB)
- `CACHE_ENABLED`: cache posting statistics in Redis (default true)
- `LOG_LEVEL`, `LOG_FORMAT`, `LOG_FILE`
"""
import os
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from rcm.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_JWT_SECRET = "change-me-development-only-secret-key"
ALLOWED_JWT_ALGORITHMS = ("HS256", "HS384", "HS512")


class RCMSettings(BaseSettings):
    """Runtime configuration for the posting engine and its HTTP surface."""

    environment: str = Field("development", alias="ENVIRONMENT")

    # Operator identity
    jwt_secret_key: str = Field(DEFAULT_JWT_SECRET, alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    jwt_access_token_expire_minutes: int = Field(
        1440, ge=5, le=10080, alias="JWT_ACCESS_TOKEN_EXPIRE_MINUTES"
    )
    require_auth: bool = Field(False, alias="REQUIRE_AUTH")
    default_operator_id: str = Field("system", alias="DEFAULT_OPERATOR_ID")

    cors_origins: str = Field("http://localhost:3000", alias="CORS_ORIGINS")

    # Posting
    stats_window_days: int = Field(30, ge=1, le=365, alias="STATS_WINDOW_DAYS")
    max_upload_bytes: int = Field(20 * 1024 * 1024, ge=1024, alias="MAX_UPLOAD_BYTES")

    # Posting stats cache (Redis)
    cache_enabled: bool = Field(True, alias="CACHE_ENABLED")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_format: str = Field("json", alias="LOG_FORMAT")
    log_file: Optional[str] = Field(None, alias="LOG_FILE")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"
        populate_by_name = True

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, value: str) -> str:
        """Only symmetric HMAC algorithms are supported for operator tokens."""
        value = value.upper()
        if value not in ALLOWED_JWT_ALGORITHMS:
            raise ValueError(
                f"JWT_ALGORITHM must be one of {', '.join(ALLOWED_JWT_ALGORITHMS)}"
            )
        return value

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("LOG_FORMAT must be 'json' or 'console'")
        return value


settings = RCMSettings()


def reload_settings() -> RCMSettings:
    """Re-read settings from the environment (used by tests and setup)."""
    global settings
    settings = RCMSettings()
    return settings


def validate_settings() -> None:
    """
    Refuse to start a production deployment with development defaults.

    Raises:
        ValueError: If the JWT secret is the development default or too short
            while ENVIRONMENT is production.
    """
    environment = os.getenv("ENVIRONMENT", settings.environment).lower()
    if environment not in ("production", "prod"):
        if settings.jwt_secret_key == DEFAULT_JWT_SECRET:
            logger.warning("Using development JWT secret", environment=environment)
        return

    if settings.jwt_secret_key == DEFAULT_JWT_SECRET or len(settings.jwt_secret_key) < 32:
        raise ValueError(
            "JWT_SECRET_KEY must be set to a value of at least 32 characters in production"
        )
    if not settings.require_auth:
        logger.warning("REQUIRE_AUTH is disabled in production", environment=environment)


def get_jwt_secret() -> str:
    """Get JWT secret key."""
    return settings.jwt_secret_key


def get_jwt_algorithm() -> str:
    """Get JWT algorithm."""
    return settings.jwt_algorithm


def get_jwt_access_token_expire_minutes() -> int:
    """Get JWT access token expiration time in minutes."""
    return settings.jwt_access_token_expire_minutes


def is_auth_required() -> bool:
    """Check if a bearer token is required to identify the operator."""
    return settings.require_auth


def get_default_operator_id() -> str:
    return settings.default_operator_id


def get_cors_origins() -> List[str]:
    """Get allowed CORS origins."""
    return [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]


def get_stats_window_days() -> int:
    """Get the trailing window (in days) used by posting statistics."""
    return settings.stats_window_days


def get_max_upload_bytes() -> int:
    return settings.max_upload_bytes


def is_cache_enabled() -> bool:
    """Check if posting stats are cached in Redis."""
    return settings.cache_enabled
