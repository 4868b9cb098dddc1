"""
Letter model - the core entity.

State is carried by three boolean flags (is_draft, is_delivered, is_open).
Only the lifecycle engine (reindeer_letter.modules.letters.lifecycle) may
flip them; see LetterState for the derived state machine.
"""

import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Date, ForeignKey, Text, JSON, Index
from sqlalchemy.orm import relationship

from reindeer_letter.core.database import Base


class LetterCategory(str, enum.Enum):
    TEXT = "TEXT"
    VOICE = "VOICE"


class LetterState(str, enum.Enum):
    """Lifecycle state derived from the letter's flags."""

    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    DELIVERED_UNREAD = "DELIVERED_UNREAD"
    DELIVERED_READ = "DELIVERED_READ"


class Letter(Base):
    """
    A letter from an (optionally anonymous) sender to a recipient.

    Invariants:
    - is_draft=False implies receiver_id is set
    - is_delivered and is_open only ever go False -> True
    - is_open=True implies is_delivered=True
    """

    __tablename__ = "letters"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Content
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    image_urls = Column(JSON, nullable=False, default=list)  # Ordered media URLs
    bgm_url = Column(String, nullable=True)  # Background audio
    audio_url = Column(String, nullable=True)  # Voice recording
    category = Column(String(16), nullable=False, default=LetterCategory.TEXT.value)

    # Relationship
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    receiver_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    sender_nickname = Column(String(20), nullable=False)

    # Scheduling (date only, UTC)
    scheduled_at = Column(Date, nullable=True)

    # State flags
    is_draft = Column(Boolean, default=False, nullable=False)
    is_delivered = Column(Boolean, default=True, nullable=False)
    is_open = Column(Boolean, default=False, nullable=False)

    # Last raw draft payload, returned to the editor untouched
    draft_data = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    sender = relationship("User", back_populates="sent_letters", foreign_keys=[sender_id])
    receiver = relationship("User", back_populates="received_letters", foreign_keys=[receiver_id])

    __table_args__ = (
        # Sweep query: undelivered letters ordered by due date
        Index("ix_letters_due", "is_delivered", "scheduled_at"),
        # Inbox listing
        Index("ix_letters_receiver_created", "receiver_id", "created_at"),
    )

    def __repr__(self):
        return f"<Letter {self.id} state={self.state.value}>"

    @property
    def state(self) -> LetterState:
        """Derive the lifecycle state from the flags."""
        if self.is_draft:
            return LetterState.DRAFT
        if not self.is_delivered:
            return LetterState.SCHEDULED
        if self.is_open:
            return LetterState.DELIVERED_READ
        return LetterState.DELIVERED_UNREAD
