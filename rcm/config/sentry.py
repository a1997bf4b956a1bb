"""Sentry error tracking configuration."""
import os
from typing import Optional, Dict, Any

import sentry_sdk
from pydantic import Field
from pydantic_settings import BaseSettings
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from rcm.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SENSITIVE_HEADERS = "authorization,cookie,x-api-key,x-auth-token,x-access-token"
# Remittance payloads carry patient names and claim amounts
DEFAULT_SENSITIVE_KEYS = "password,token,secret,key,ssn,phi,patient_name,raw_content"


class SentrySettings(BaseSettings):
    """Sentry configuration settings."""

    dsn: Optional[str] = Field(None, alias="SENTRY_DSN")
    environment: str = Field("development", alias="SENTRY_ENVIRONMENT")
    release: Optional[str] = Field(None, alias="SENTRY_RELEASE")
    traces_sample_rate: float = Field(0.1, alias="SENTRY_TRACES_SAMPLE_RATE")
    send_default_pii: bool = Field(False, alias="SENTRY_SEND_DEFAULT_PII")  # PHI never leaves the service
    enable_before_send_filter: bool = Field(True, alias="SENTRY_ENABLE_BEFORE_SEND_FILTER")

    sensitive_headers: str = Field(DEFAULT_SENSITIVE_HEADERS, alias="SENTRY_SENSITIVE_HEADERS")
    sensitive_keys: str = Field(DEFAULT_SENSITIVE_KEYS, alias="SENTRY_SENSITIVE_KEYS")

    # Alert configuration
    enable_alerts: bool = Field(True, alias="SENTRY_ENABLE_ALERTS")
    alert_on_errors: bool = Field(True, alias="SENTRY_ALERT_ON_ERRORS")
    alert_on_warnings: bool = Field(False, alias="SENTRY_ALERT_ON_WARNINGS")

    enable_tracing: bool = Field(True, alias="SENTRY_ENABLE_TRACING")
    enable_sqlalchemy_integration: bool = Field(True, alias="SENTRY_ENABLE_SQLALCHEMY_INTEGRATION")
    enable_redis_integration: bool = Field(True, alias="SENTRY_ENABLE_REDIS_INTEGRATION")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"
        populate_by_name = True


settings = SentrySettings()


def is_enabled() -> bool:
    """True once a DSN is configured and we are not under test."""
    return bool(settings.dsn) and os.getenv("TESTING") != "true"


def init_sentry() -> None:
    """
    Initialize Sentry error tracking.

    Called by `setup_application()` right after the environment is loaded and
    before logging is configured. Without `SENTRY_DSN` errors are only logged
    locally. Initialization is skipped when `TESTING=true`.
    """
    if not settings.dsn:
        logger.info("Sentry DSN not configured, error tracking disabled")
        return

    if os.getenv("TESTING") == "true":
        logger.info("Skipping Sentry initialization in test environment")
        return

    integrations = [
        LoggingIntegration(level=None, event_level=None),
    ]
    if settings.enable_sqlalchemy_integration:
        integrations.append(SqlalchemyIntegration())
    if settings.enable_redis_integration:
        integrations.append(RedisIntegration())

    sentry_sdk.init(
        dsn=settings.dsn,
        environment=settings.environment,
        release=settings.release,
        traces_sample_rate=settings.traces_sample_rate if settings.enable_tracing else 0.0,
        send_default_pii=settings.send_default_pii,
        integrations=integrations,
        before_send=filter_sensitive_data if settings.enable_before_send_filter else None,
    )

    logger.info(
        "Sentry initialized",
        environment=settings.environment,
        release=settings.release,
        tracing_enabled=settings.enable_tracing,
    )


def _split_setting(value: str):
    return [item.strip().lower() for item in value.split(",") if item.strip()]


def filter_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Strip credentials and patient data from a Sentry event before it is sent.

    - request headers listed in `SENTRY_SENSITIVE_HEADERS` are removed
    - the user context is reduced to `id`/`username`
    - `extra` keys matching `SENTRY_SENSITIVE_KEYS` (substring match) are removed
    """
    sensitive_headers = _split_setting(settings.sensitive_headers)
    sensitive_keys = _split_setting(settings.sensitive_keys)

    headers = event.get("request", {}).get("headers")
    if headers:
        for header_key in [h for h in headers if h.lower() in sensitive_headers]:
            headers.pop(header_key, None)

    if "user" in event:
        event["user"] = {
            "id": event["user"].get("id"),
            "username": event["user"].get("username"),
        }

    extra = event.get("extra")
    if extra:
        for extra_key in [k for k in extra if any(s in k.lower() for s in sensitive_keys)]:
            extra.pop(extra_key, None)

    return event


def capture_exception(
    exception: Exception,
    level: str = "error",
    context: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """
    Capture an exception to Sentry with additional context.

    Returns:
        Event ID if Sentry is configured, None otherwise
    """
    if not is_enabled():
        return None

    with sentry_sdk.new_scope() as scope:
        scope.set_level(level)
        for key, value in (context or {}).items():
            scope.set_context(key, value if isinstance(value, dict) else {"value": value})
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        return sentry_sdk.capture_exception(exception)


def add_breadcrumb(
    message: str,
    category: str = "default",
    level: str = "info",
    data: Optional[Dict[str, Any]] = None,
) -> None:
    """Add a breadcrumb describing what happened before an error."""
    if not is_enabled():
        return
    sentry_sdk.add_breadcrumb(message=message, category=category, level=level, data=data or {})
