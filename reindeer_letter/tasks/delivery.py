"""
Celery task for scheduled letter delivery.

Runs hourly (see beat_schedule in core.celery_app). Safe to run
concurrently with itself or with a manual POST /internal/sweep.
"""

import logging

from reindeer_letter.core.celery_app import celery_app
from reindeer_letter.core.celery_utils import run_async_task

logger = logging.getLogger(__name__)


async def _deliver() -> dict:
    from reindeer_letter.core.config import settings
    from reindeer_letter.core.database import AsyncSessionLocal
    from reindeer_letter.modules.letters.lifecycle import LifecycleConfig
    from reindeer_letter.modules.letters.sweeper import DeliverySweeper
    from reindeer_letter.modules.notify.email_service import EmailNotifier

    async with AsyncSessionLocal() as session:
        sweeper = DeliverySweeper(
            session,
            EmailNotifier(),
            LifecycleConfig.from_settings(settings),
        )
        result = await sweeper.run()

    return {"status": "success", **result.to_dict()}


@celery_app.task(
    name="reindeer_letter.tasks.delivery.deliver_scheduled_letters",
    bind=True,
    max_retries=3,
)
def deliver_scheduled_letters(self):
    """
    Promote due scheduled letters to delivered and notify recipients.

    Per-letter failures are isolated inside the sweep. Only a failure of the
    sweep as a whole (e.g. database unreachable) is retried, with
    exponential backoff: 60s, 120s, 240s.
    """
    logger.info("Starting scheduled letter delivery")

    try:
        return run_async_task(_deliver())
    except Exception as exc:
        retry_delay = 60 * (2 ** self.request.retries)
        logger.error(
            f"Scheduled delivery sweep failed: {exc}",
            extra={"retry_in_seconds": retry_delay, "attempt": self.request.retries + 1}
        )
        raise self.retry(exc=exc, countdown=retry_delay)
