"""
Letter lifecycle engine.

The single authority for letter state transitions:

    (none) --create, date <= today--> DELIVERED_UNREAD
    (none) --create, date >  today--> SCHEDULED
    (none) --save draft-------------> DRAFT
    DRAFT  --edit-------------------> DRAFT
    DRAFT  --send-------------------> SCHEDULED | DELIVERED_UNREAD
    DRAFT  --delete-----------------> (removed)
    SCHEDULED --sweep (date arrived)> DELIVERED_UNREAD
    DELIVERED_UNREAD --recipient view--> DELIVERED_READ
    DELIVERED_READ   --recipient view--> DELIVERED_READ (no-op)

Every transition is a single conditional UPDATE whose WHERE clause carries
the transition guard, so a lost race shows up as "no row matched" rather
than as a double transition.

Scheduling is day-granular and evaluated in UTC: a schedule date is due
once it is on or before today's UTC date.
"""

import enum
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, List, Optional

from dateutil import parser as date_parser

from reindeer_letter.core.config import Settings
from reindeer_letter.core.errors import NotFoundError, ValidationError
from reindeer_letter.models.letter import Letter, LetterCategory
from reindeer_letter.modules.letters.access import (
    ensure_deliverable,
    ensure_recipient,
    require_user_id,
)
from reindeer_letter.modules.letters.repository import LetterFilter, LetterRepository

logger = logging.getLogger(__name__)

DRAFT_NOT_FOUND = "Draft letter not found."


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LifecycleConfig:
    """Explicit engine configuration, built once at startup."""

    draft_placeholder_title: str = "Untitled draft"
    draft_placeholder_body: str = ""
    anonymous_nickname: str = "Anonymous"
    max_page_size: int = 100
    allow_anonymous: bool = True
    clock: Callable[[], datetime] = utc_now

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], datetime] = utc_now) -> "LifecycleConfig":
        return cls(
            draft_placeholder_title=settings.DRAFT_PLACEHOLDER_TITLE,
            draft_placeholder_body=settings.DRAFT_PLACEHOLDER_BODY,
            anonymous_nickname=settings.ANONYMOUS_NICKNAME,
            max_page_size=settings.MAX_PAGE_SIZE,
            allow_anonymous=settings.ALLOW_ANONYMOUS_LETTERS,
            clock=clock,
        )


@dataclass
class LetterContent:
    """Everything a sender writes into a letter."""

    title: str
    description: str
    image_urls: List[str] = field(default_factory=list)
    bgm_url: Optional[str] = None
    audio_url: Optional[str] = None
    category: str = LetterCategory.TEXT.value
    sender_nickname: Optional[str] = None


class DraftOutcome(str, enum.Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"


@dataclass
class DraftSaveResult:
    letter: Letter
    outcome: DraftOutcome

    @property
    def created(self) -> bool:
        return self.outcome is DraftOutcome.CREATED


@dataclass
class Page:
    """One page of letters plus pagination metadata."""

    items: List[Letter]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def meta(self) -> dict:
        return {
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
        }


def normalize_schedule_date(value: Any) -> Optional[date]:
    """
    Reduce a schedule input to a UTC calendar date.

    Accepts a date, a datetime (aware ones are converted to UTC first) or an
    ISO-8601 string ("2024-12-25" or "2024-12-25T09:00:00+09:00"). The time
    component is discarded.

    Raises:
        ValidationError: If a string cannot be parsed
    """
    if value is None or value == "":
        return None

    if isinstance(value, str):
        try:
            value = date_parser.isoparse(value)
        except (ValueError, OverflowError):
            raise ValidationError(f"Invalid schedule date: {value!r}")

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()

    if isinstance(value, date):
        return value

    raise ValidationError(f"Invalid schedule date: {value!r}")


def is_due(scheduled_at: Optional[date], today: date) -> bool:
    """A letter without a date, or dated today or earlier, is deliverable now."""
    return scheduled_at is None or scheduled_at <= today


def _validate_category(category: Optional[str]) -> Optional[str]:
    if category is None:
        return None
    try:
        return LetterCategory(category).value
    except ValueError:
        raise ValidationError(f"Unknown letter category: {category!r}")


class LetterLifecycle:
    """
    Letter state machine and visibility rules.

    Usage:
        engine = LetterLifecycle(LetterRepository(db), LifecycleConfig.from_settings(settings))
        letter = await engine.create_letter(content, recipient_id=2)
    """

    def __init__(self, repository: LetterRepository, config: Optional[LifecycleConfig] = None):
        self.repository = repository
        self.config = config or LifecycleConfig()

    def today(self) -> date:
        """Today's date in UTC according to the configured clock."""
        now = self.config.clock()
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        return now.date()

    def _now_naive(self) -> datetime:
        now = self.config.clock()
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc).replace(tzinfo=None)
        return now

    def _check_paging(self, page: int, limit: int) -> None:
        if page < 1:
            raise ValidationError("Page number must be 1 or greater.")
        if limit < 1:
            raise ValidationError("Page size must be 1 or greater.")
        if limit > self.config.max_page_size:
            raise ValidationError(f"Page size must not exceed {self.config.max_page_size}.")

    async def _require_recipient(self, recipient_id: Optional[int]) -> int:
        if recipient_id is None:
            raise ValidationError("A recipient is required to send a letter.")
        if not await self.repository.user_exists(recipient_id):
            raise NotFoundError("Recipient not found.")
        return recipient_id

    def _content_fields(self, content: LetterContent) -> dict:
        if not content.title or not content.title.strip():
            raise ValidationError("A letter needs a title.")
        return {
            "title": content.title,
            "description": content.description or "",
            "image_urls": list(content.image_urls or []),
            "bgm_url": content.bgm_url,
            "audio_url": content.audio_url,
            "category": _validate_category(content.category) or LetterCategory.TEXT.value,
            "sender_nickname": content.sender_nickname or self.config.anonymous_nickname,
        }

    # Creation

    async def create_letter(
        self,
        content: LetterContent,
        recipient_id: Optional[int],
        scheduled_at: Any = None,
        sender_id: Optional[int] = None,
    ) -> Letter:
        """
        Create a sent letter, either delivered now or scheduled.

        Raises:
            ValidationError: Missing recipient or title, bad schedule date
            NotFoundError: Recipient does not exist
        """
        recipient_id = await self._require_recipient(recipient_id)
        fields = self._content_fields(content)
        schedule_date = normalize_schedule_date(scheduled_at)
        delivered = is_due(schedule_date, self.today())

        letter = await self.repository.create_letter(
            **fields,
            sender_id=sender_id,
            receiver_id=recipient_id,
            scheduled_at=schedule_date,
            is_draft=False,
            is_delivered=delivered,
            is_open=False,
            created_at=self._now_naive(),
            updated_at=self._now_naive(),
        )

        logger.info(
            f"Letter {letter.id} created as {letter.state.value}",
            extra={
                "letter_id": letter.id,
                "receiver_id": recipient_id,
                "anonymous": sender_id is None,
                "scheduled_at": str(schedule_date) if schedule_date else None,
            }
        )
        return letter

    # Reading

    async def view_letter(self, letter_id: int, viewer_id: Optional[int]) -> Letter:
        """
        Return a letter's full content to its recipient.

        The first successful view flips is_open; later views are no-ops.

        Raises:
            UnauthorizedError: No viewer
            NotFoundError: No such letter
            ForbiddenError: Viewer is not the recipient, or letter not yet delivered
        """
        viewer_id = require_user_id(viewer_id)

        letter = await self.repository.find_letter_by_id(letter_id)
        if letter is None or letter.is_draft:
            raise NotFoundError("Letter not found.")

        ensure_recipient(letter, viewer_id)
        ensure_deliverable(letter)

        if not letter.is_open:
            opened = await self.repository.update_letter(
                letter.id,
                {"is_open": True, "updated_at": self._now_naive()},
                where=LetterFilter(receiver_id=viewer_id, is_delivered=True, is_open=False),
            )
            if opened is not None:
                letter = opened
                logger.info(f"Letter {letter.id} opened", extra={"letter_id": letter.id})
            else:
                # A concurrent view already opened it
                await self.repository.refresh(letter)

        return letter

    async def list_received(
        self,
        recipient_id: int,
        page: int = 1,
        limit: int = 10,
        category: Optional[str] = None,
    ) -> Page:
        """
        Delivered letters addressed to the recipient, newest first.

        Drafts and still-scheduled letters are excluded.
        """
        self._check_paging(page, limit)
        where = LetterFilter(
            receiver_id=recipient_id,
            is_draft=False,
            is_delivered=True,
            category=_validate_category(category),
        )
        items, total = await self.repository.find_letters(where, page, limit)
        return Page(items=items, total=total, page=page, limit=limit)

    async def list_self_addressed(self, user_id: int, page: int = 1, limit: int = 10) -> Page:
        """Letters the user wrote to themselves (sent ones only), newest first."""
        self._check_paging(page, limit)
        where = LetterFilter(receiver_id=user_id, sender_id=user_id, is_draft=False)
        items, total = await self.repository.find_letters(where, page, limit)
        return Page(items=items, total=total, page=page, limit=limit)

    # Drafts

    def _draft_guard(self, sender_id: int) -> LetterFilter:
        return LetterFilter(sender_id=sender_id, is_draft=True)

    async def save_draft(
        self,
        fields: dict,
        sender_id: Optional[int],
        draft_id: Optional[int] = None,
    ) -> DraftSaveResult:
        """
        Create a new draft or update an existing one.

        Args:
            fields: Partial letter fields as submitted (JSON-safe); also kept
                verbatim in draft_data
            sender_id: Draft owner
            draft_id: Existing draft to update, or None to create

        Returns:
            DraftSaveResult tagged CREATED or UPDATED

        Raises:
            UnauthorizedError: No sender
            NotFoundError: draft_id is not a draft owned by sender_id, or the
                recipient does not exist
        """
        sender_id = require_user_id(sender_id, "Log in to save drafts.")
        receiver_id = fields.get("receiver_id")
        if receiver_id is not None and not await self.repository.user_exists(receiver_id):
            raise NotFoundError("Recipient not found.")
        category = _validate_category(fields.get("category"))
        schedule_date = normalize_schedule_date(fields.get("scheduled_at"))

        if draft_id is not None:
            existing = await self.repository.find_letter(draft_id, where=self._draft_guard(sender_id))
            if existing is None:
                raise NotFoundError(DRAFT_NOT_FOUND)

            # Empty values keep what the draft already had
            updates = {"draft_data": fields, "updated_at": self._now_naive()}
            for name in ("title", "description", "image_urls", "bgm_url", "audio_url", "sender_nickname"):
                if fields.get(name):
                    updates[name] = fields[name]
            if category:
                updates["category"] = category
            if receiver_id is not None:
                updates["receiver_id"] = receiver_id
            if schedule_date is not None:
                updates["scheduled_at"] = schedule_date

            letter = await self.repository.update_letter(draft_id, updates, where=self._draft_guard(sender_id))
            if letter is None:
                # Sent or deleted between the read and the write
                raise NotFoundError(DRAFT_NOT_FOUND)
            return DraftSaveResult(letter=letter, outcome=DraftOutcome.UPDATED)

        letter = await self.repository.create_letter(
            title=fields.get("title") or self.config.draft_placeholder_title,
            description=fields.get("description") or self.config.draft_placeholder_body,
            image_urls=list(fields.get("image_urls") or []),
            bgm_url=fields.get("bgm_url"),
            audio_url=fields.get("audio_url"),
            category=category or LetterCategory.TEXT.value,
            sender_nickname=fields.get("sender_nickname") or self.config.anonymous_nickname,
            sender_id=sender_id,
            # Placeholder recipient until the draft is sent
            receiver_id=receiver_id if receiver_id is not None else sender_id,
            scheduled_at=schedule_date,
            is_draft=True,
            is_delivered=False,
            is_open=False,
            draft_data=fields,
            created_at=self._now_naive(),
            updated_at=self._now_naive(),
        )
        logger.info(f"Draft {letter.id} created", extra={"letter_id": letter.id, "sender_id": sender_id})
        return DraftSaveResult(letter=letter, outcome=DraftOutcome.CREATED)

    async def get_draft(self, draft_id: int, sender_id: Optional[int]) -> Letter:
        sender_id = require_user_id(sender_id)
        letter = await self.repository.find_letter(draft_id, where=self._draft_guard(sender_id))
        if letter is None:
            raise NotFoundError(DRAFT_NOT_FOUND)
        return letter

    async def list_drafts(self, sender_id: Optional[int], page: int = 1, limit: int = 10) -> Page:
        """The sender's drafts, most recently edited first."""
        sender_id = require_user_id(sender_id)
        self._check_paging(page, limit)
        items, total = await self.repository.find_letters(
            self._draft_guard(sender_id), page, limit, order_by="updated_at"
        )
        return Page(items=items, total=total, page=page, limit=limit)

    async def send_draft(
        self,
        draft_id: int,
        content: LetterContent,
        sender_id: Optional[int],
        recipient_id: Optional[int],
        scheduled_at: Any = None,
    ) -> Letter:
        """
        Promote a draft to a sent letter in place.

        The row keeps its id, so links to the draft stay valid. Scheduling is
        evaluated exactly as for create_letter, and created_at moves to the
        send time so the letter lands at the top of the recipient's inbox.

        Raises:
            UnauthorizedError: No sender
            ValidationError: Missing recipient or title, bad schedule date
            NotFoundError: Not a draft owned by sender_id, or unknown recipient
        """
        sender_id = require_user_id(sender_id)
        if await self.repository.find_letter(draft_id, where=self._draft_guard(sender_id)) is None:
            raise NotFoundError(DRAFT_NOT_FOUND)

        recipient_id = await self._require_recipient(recipient_id)
        fields = self._content_fields(content)
        schedule_date = normalize_schedule_date(scheduled_at)
        delivered = is_due(schedule_date, self.today())

        letter = await self.repository.update_letter(
            draft_id,
            {
                **fields,
                "receiver_id": recipient_id,
                "scheduled_at": schedule_date,
                "is_draft": False,
                "is_delivered": delivered,
                "is_open": False,
                "draft_data": None,
                "created_at": self._now_naive(),
                "updated_at": self._now_naive(),
            },
            where=self._draft_guard(sender_id),
        )
        if letter is None:
            raise NotFoundError(DRAFT_NOT_FOUND)

        logger.info(
            f"Draft {letter.id} sent as {letter.state.value}",
            extra={"letter_id": letter.id, "receiver_id": recipient_id}
        )
        return letter

    async def delete_draft(self, draft_id: int, sender_id: Optional[int]) -> None:
        sender_id = require_user_id(sender_id)
        deleted = await self.repository.delete_letter(draft_id, where=self._draft_guard(sender_id))
        if not deleted:
            raise NotFoundError(DRAFT_NOT_FOUND)
        logger.info(f"Draft {draft_id} deleted", extra={"letter_id": draft_id})

    # System transitions

    async def promote_due(self, letter_id: int) -> Optional[Letter]:
        """
        SCHEDULED -> DELIVERED_UNREAD, for the sweeper only.

        Bypasses identity checks. Returns None when the letter was already
        delivered (e.g. by a concurrent sweep) or is not due yet.
        """
        return await self.repository.update_letter(
            letter_id,
            {"is_delivered": True, "updated_at": self._now_naive()},
            where=LetterFilter(is_draft=False, is_delivered=False, due_on_or_before=self.today()),
        )
