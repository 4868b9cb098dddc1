"""
EmailVerification model - one-time codes proving ownership of an email.

Keyed by email. A new request replaces the code (upsert); rows are never
deleted, expired codes are simply rejected by timestamp comparison.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean

from reindeer_letter.core.database import Base


class EmailVerification(Base):
    __tablename__ = "email_verifications"

    email = Column(String, primary_key=True)
    code = Column(String(16), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<EmailVerification {self.email} verified={self.verified}>"

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the code has expired (naive UTC timestamps)."""
        now = now or datetime.utcnow()
        return self.expires_at < now
