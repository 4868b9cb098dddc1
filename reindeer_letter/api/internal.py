"""
Internal endpoints for infrastructure callers.

Handles:
- External cron trigger for the delivery sweep (when Celery beat is not
  running, e.g. a serverless scheduler hitting the API)
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from reindeer_letter.core.config import settings
from reindeer_letter.core.database import get_db
from reindeer_letter.core.errors import ForbiddenError, UnauthorizedError
from reindeer_letter.modules.letters.routes import get_lifecycle_config
from reindeer_letter.modules.letters.lifecycle import LifecycleConfig
from reindeer_letter.modules.letters.sweeper import DeliverySweeper
from reindeer_letter.modules.notify.email_service import EmailNotifier

logger = logging.getLogger(__name__)

router = APIRouter()


def get_notifier() -> EmailNotifier:
    return EmailNotifier()


def require_cron_secret(x_cron_secret: Optional[str] = Header(default=None)) -> None:
    """
    Check the shared secret sent by the scheduler.

    Raises:
        UnauthorizedError: Header missing
        ForbiddenError: Secret not configured or wrong
    """
    if not x_cron_secret:
        raise UnauthorizedError("Missing X-Cron-Secret header.")
    if not settings.CRON_SECRET or not hmac.compare_digest(x_cron_secret, settings.CRON_SECRET):
        raise ForbiddenError("Invalid cron secret.")


@router.post("/sweep", dependencies=[Depends(require_cron_secret)])
async def trigger_sweep(
    db: AsyncSession = Depends(get_db),
    notifier: EmailNotifier = Depends(get_notifier),
    config: LifecycleConfig = Depends(get_lifecycle_config),
):
    """
    Run one delivery sweep synchronously and return its summary.

    Usage:
        curl -X POST http://localhost:8000/internal/sweep -H "X-Cron-Secret: $CRON_SECRET"
    """
    result = await DeliverySweeper(db, notifier, config).run()
    logger.info(
        "Delivery sweep triggered over HTTP",
        extra={"processed_count": result.processed_count}
    )
    return {
        "message": "Scheduled letters processed successfully",
        "result": result.to_dict(),
    }
