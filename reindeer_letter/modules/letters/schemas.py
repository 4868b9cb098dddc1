"""Pydantic models for letter requests and responses."""

from datetime import date, datetime
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from reindeer_letter.models.letter import Letter, LetterCategory
from reindeer_letter.modules.letters.lifecycle import LetterContent, Page


class LetterCreate(BaseModel):
    """A letter ready to send (also the body of POST /letters/draft/{id}/send)."""

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    image_urls: List[str] = Field(default_factory=list)
    bgm_url: Optional[str] = None
    audio_url: Optional[str] = None
    category: LetterCategory = LetterCategory.TEXT
    receiver_id: Optional[int] = Field(default=None, description="Recipient user id")
    scheduled_at: Optional[str] = Field(
        default=None,
        description="Delivery date (YYYY-MM-DD, or ISO-8601 datetime; the time is discarded)",
        examples=["2024-12-25"],
    )
    sender_nickname: str = Field(min_length=1, max_length=20)

    def to_content(self) -> LetterContent:
        return LetterContent(
            title=self.title,
            description=self.description,
            image_urls=self.image_urls,
            bgm_url=self.bgm_url,
            audio_url=self.audio_url,
            category=self.category.value,
            sender_nickname=self.sender_nickname,
        )


class DraftSave(BaseModel):
    """Partial letter. Every field is optional while drafting."""

    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    image_urls: Optional[List[str]] = None
    bgm_url: Optional[str] = None
    audio_url: Optional[str] = None
    category: Optional[LetterCategory] = None
    receiver_id: Optional[int] = None
    scheduled_at: Optional[str] = None
    sender_nickname: Optional[str] = Field(default=None, max_length=20)

    def to_fields(self) -> dict:
        """JSON-safe dict of the fields the client actually sent."""
        return self.model_dump(mode="json", exclude_unset=True)


class LetterOut(BaseModel):
    """Full letter content, returned to the recipient or to the sender of a draft."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    image_urls: List[str]
    bgm_url: Optional[str] = None
    audio_url: Optional[str] = None
    category: LetterCategory
    sender_id: Optional[int] = None
    receiver_id: Optional[int] = None
    sender_nickname: str
    scheduled_at: Optional[date] = None
    is_draft: bool
    is_delivered: bool
    is_open: bool
    created_at: datetime
    updated_at: datetime


class LetterSummary(BaseModel):
    """List entry. The body is withheld until the letter is delivered."""

    id: int
    title: str
    description: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    bgm_url: Optional[str] = None
    category: LetterCategory
    sender_nickname: str
    scheduled_at: Optional[date] = None
    is_delivered: bool
    is_open: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_letter(cls, letter: Letter) -> "LetterSummary":
        delivered = bool(letter.is_delivered)
        return cls(
            id=letter.id,
            title=letter.title,
            description=letter.description if delivered else None,
            image_urls=list(letter.image_urls or []) if delivered else [],
            bgm_url=letter.bgm_url if delivered else None,
            category=letter.category,
            sender_nickname=letter.sender_nickname,
            scheduled_at=letter.scheduled_at,
            is_delivered=delivered,
            is_open=letter.is_open,
            created_at=letter.created_at,
            updated_at=letter.updated_at,
        )


class DraftOut(LetterOut):
    draft_data: Optional[Any] = None


class DraftSaveResponse(BaseModel):
    outcome: str
    draft: DraftOut


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class LetterPage(BaseModel):
    items: List[LetterSummary]
    meta: PageMeta

    @classmethod
    def from_page(cls, page: Page) -> "LetterPage":
        return cls(
            items=[LetterSummary.from_letter(letter) for letter in page.items],
            meta=PageMeta(**page.meta()),
        )


class DraftPage(BaseModel):
    items: List[DraftOut]
    meta: PageMeta

    @classmethod
    def from_page(cls, page: Page) -> "DraftPage":
        return cls(
            items=[DraftOut.model_validate(letter) for letter in page.items],
            meta=PageMeta(**page.meta()),
        )
