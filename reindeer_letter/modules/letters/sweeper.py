"""
Scheduled delivery sweeper.

Promotes every due SCHEDULED letter to DELIVERED_UNREAD, then notifies the
recipient. Triggered by Celery beat (reindeer_letter.tasks.delivery) and by
POST /internal/sweep.

Ordering per letter:
1. Guarded promotion (is_delivered = false in the WHERE clause)
2. Commit
3. Best-effort notification

Committing before notifying means a crash between 2 and 3 can lose a
notification but never re-deliver a letter. Overlapping sweeps are safe:
whichever commits second matches zero rows and skips the letter.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from reindeer_letter.core.sentry import capture_business_error
from reindeer_letter.modules.letters.lifecycle import LetterLifecycle, LifecycleConfig
from reindeer_letter.modules.letters.repository import LetterRepository

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify_delivery(self, recipient_email: str, letter_title: str) -> None:
        ...


@dataclass
class DeliveredLetter:
    id: int
    title: str
    receiver_id: int
    scheduled_at: Optional[date]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "receiver_id": self.receiver_id,
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
        }


@dataclass
class SweepResult:
    processed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    notification_failures: int = 0
    letters: List[DeliveredLetter] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "skipped_count": self.skipped_count,
            "notification_failures": self.notification_failures,
            "letters": [letter.to_dict() for letter in self.letters],
        }


class DeliverySweeper:
    """
    One sweep over the due letters.

    Usage:
        async with AsyncSessionLocal() as session:
            result = await DeliverySweeper(session, EmailNotifier()).run()
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier,
        config: Optional[LifecycleConfig] = None,
    ):
        self.session = session
        self.notifier = notifier
        self.engine = LetterLifecycle(LetterRepository(session), config)

    async def run(self) -> SweepResult:
        today = self.engine.today()
        result = SweepResult()

        rows = await self.engine.repository.find_due_deliveries(today)
        # Plain values only, a rollback below expires every ORM instance in the session
        due = [(letter.id, letter.title, email) for letter, email in rows]

        logger.info(
            f"Delivery sweep found {len(due)} due letters",
            extra={"due_count": len(due), "sweep_date": str(today)}
        )

        for letter_id, title, recipient_email in due:
            try:
                promoted = await self.engine.promote_due(letter_id)
                await self.session.commit()
            except Exception as e:
                await self.session.rollback()
                result.failed_count += 1
                logger.error(
                    f"Failed to deliver letter {letter_id}: {e}",
                    extra={"letter_id": letter_id, "error": str(e)}
                )
                continue

            if promoted is None:
                # Delivered by an overlapping sweep
                result.skipped_count += 1
                continue

            result.processed_count += 1
            result.letters.append(
                DeliveredLetter(
                    id=promoted.id,
                    title=promoted.title,
                    receiver_id=promoted.receiver_id,
                    scheduled_at=promoted.scheduled_at,
                )
            )

            try:
                await self.notifier.notify_delivery(recipient_email, title)
            except Exception as e:
                result.notification_failures += 1
                capture_business_error(
                    error=e,
                    context={"letter_id": letter_id, "operation": "notify_delivery"},
                    level="warning",
                )

        logger.info(
            f"Delivery sweep complete: {result.processed_count} delivered, "
            f"{result.failed_count} failed, {result.skipped_count} skipped",
            extra={
                "processed_count": result.processed_count,
                "failed_count": result.failed_count,
                "skipped_count": result.skipped_count,
                "notification_failures": result.notification_failures,
            }
        )
        return result
