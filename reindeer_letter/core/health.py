"""
Health check utilities for monitoring application components.

Checks:
- Database connectivity
- Redis connectivity (Celery broker)
- Postmark configuration
- Delivery backlog (scheduled letters whose date has passed)
"""

import logging
from datetime import datetime
from typing import Dict, Any

import redis
from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError

from reindeer_letter.core.config import settings
from reindeer_letter.core.database import AsyncSessionLocal
from reindeer_letter.models.letter import Letter

logger = logging.getLogger(__name__)


async def check_database() -> Dict[str, Any]:
    """
    Check PostgreSQL database connectivity.

    Returns:
        Dict with status, latency, and error (if any)
    """
    start_time = datetime.utcnow()

    try:
        async with AsyncSessionLocal() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()

        latency_ms = (datetime.utcnow() - start_time).total_seconds() * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except OperationalError as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }
    except Exception as e:
        logger.error(f"Unexpected database error: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }


async def check_redis() -> Dict[str, Any]:
    """
    Check Redis connectivity (Celery broker and rate limit storage).

    Returns:
        Dict with status, latency, and error (if any)
    """
    start_time = datetime.utcnow()

    try:
        redis_client = redis.from_url(settings.CELERY_BROKER_URL, socket_connect_timeout=2)
        redis_client.ping()

        latency_ms = (datetime.utcnow() - start_time).total_seconds() * 1000

        redis_client.close()

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except redis.ConnectionError as e:
        logger.error(f"Redis health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }
    except Exception as e:
        logger.error(f"Unexpected Redis error: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }


async def check_email_provider() -> Dict[str, Any]:
    """
    Check Postmark configuration.

    Lightweight: verifies the API key is set, no request is made.
    """
    if not settings.POSTMARK_API_KEY:
        return {
            "status": "unhealthy",
            "error": "Postmark API key not configured",
        }

    return {
        "status": "healthy",
        "configured": True,
    }


async def check_delivery_backlog() -> Dict[str, Any]:
    """
    Count scheduled letters whose delivery date has already passed.

    A growing backlog means the sweep (Celery beat or the cron trigger) is
    not running.

    Returns:
        Dict with status and overdue count
    """
    today = datetime.utcnow().date()

    try:
        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(func.count()).select_from(Letter).where(
                    Letter.is_draft.is_(False),
                    Letter.is_delivered.is_(False),
                    Letter.scheduled_at < today,
                )
            )
            overdue = result.scalar() or 0

        if overdue:
            return {
                "status": "warning",
                "overdue_letters": overdue,
                "message": "Scheduled letters past their date - check the delivery sweep",
            }

        return {
            "status": "healthy",
            "overdue_letters": 0,
        }
    except Exception as e:
        logger.error(f"Delivery backlog check failed: {e}")
        return {
            "status": "unknown",
            "error": str(e),
        }


async def get_health_metrics() -> Dict[str, Any]:
    """
    Get health metrics for all components.

    Returns:
        Dict with overall status and component-specific metrics
    """
    metrics = {
        "database": await check_database(),
        "redis": await check_redis(),
        "email_provider": await check_email_provider(),
        "delivery_backlog": await check_delivery_backlog(),
    }

    unhealthy_components = [
        component for component, status in metrics.items()
        if status.get("status") == "unhealthy"
    ]

    if unhealthy_components:
        overall_status = "unhealthy"
    elif any(status.get("status") == "warning" for status in metrics.values()):
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return {
        "status": overall_status,
        "timestamp": datetime.utcnow().isoformat(),
        "components": metrics,
    }
