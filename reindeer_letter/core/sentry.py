"""
Sentry initialization and error monitoring configuration.

Captures:
- Python exceptions
- FastAPI errors
- Celery task failures (delivery sweeps)
- Business errors such as failed delivery notifications
"""

import logging
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from reindeer_letter.core.config import settings

logger = logging.getLogger(__name__)

# Keys whose values are redacted before an event leaves the process
SENSITIVE_KEYS = [
    "access_token",
    "refresh_token",
    "encrypted_refresh_token",
    "token",
    "password",
    "password_hash",
    "secret",
    "api_key",
    "encryption_key",
    "code",
    "description",
]


def init_sentry():
    """
    Initialize Sentry error monitoring.

    Only initializes if SENTRY_DSN is configured.
    """
    if not settings.SENTRY_DSN:
        logger.info("Sentry DSN not configured - error monitoring disabled")
        return

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release="reindeer-letter@0.1.0",
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            CeleryIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        sample_rate=1.0,
        send_default_pii=False,
        max_breadcrumbs=50,
        before_send=filter_sensitive_data,
    )

    logger.info(f"Sentry initialized - environment: {settings.ENVIRONMENT}")


def _redact(obj):
    if isinstance(obj, dict):
        for key in list(obj.keys()):
            if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
                obj[key] = "[REDACTED]"
            else:
                _redact(obj[key])
    elif isinstance(obj, list):
        for item in obj:
            _redact(item)


def filter_sensitive_data(event, hint):
    """
    Filter sensitive data before sending to Sentry.

    Removes tokens, passwords, verification codes and letter bodies from
    the event's extra data and contexts.

    Args:
        event: Sentry event dict
        hint: Additional context

    Returns:
        Modified event
    """
    if event.get("extra"):
        _redact(event["extra"])

    if event.get("contexts"):
        _redact(event["contexts"])

    return event


def capture_business_error(
    error: Exception,
    context: dict,
    level: str = "error"
):
    """
    Capture a business logic error with enriched context.

    Use this for expected errors that need tracking, e.g. a delivery
    notification that could not be sent.

    Example:
        capture_business_error(
            error=e,
            context={"letter_id": letter.id, "operation": "notify_delivery"},
            level="warning"
        )
    """
    safe_context = {k: v for k, v in context.items() if "token" not in k.lower()}

    sentry_sdk.capture_exception(
        error,
        level=level,
        extras=safe_context,
    )

    logger.error(
        f"Business error captured: {error}",
        extra=safe_context,
        exc_info=True
    )
