"""
User model - represents application users.

A user registers locally (email + password, after email verification) or via
an OAuth provider, and can both send and receive letters.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.orm import relationship

from reindeer_letter.core.database import Base
from reindeer_letter.core.security import generate_public_id


class User(Base):
    """
    Application user.

    CRITICAL SECURITY:
    - password_hash is nullable (OAuth-only accounts have none)
    - encrypted_refresh_token is ALWAYS encrypted before storage
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    public_id = Column(String(32), unique=True, nullable=False, index=True, default=generate_public_id)
    email = Column(String, unique=True, nullable=False, index=True)
    nickname = Column(String(20), unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=True)
    profile_image_url = Column(String, nullable=True)

    # External identity providers
    google_id = Column(String, unique=True, nullable=True)
    kakao_id = Column(String, unique=True, nullable=True)

    # Rotated on login/refresh, cleared on logout
    encrypted_refresh_token = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    received_letters = relationship(
        "Letter",
        back_populates="receiver",
        foreign_keys="Letter.receiver_id",
    )
    sent_letters = relationship(
        "Letter",
        back_populates="sender",
        foreign_keys="Letter.sender_id",
    )

    def __repr__(self):
        return f"<User {self.email}>"

    @property
    def is_oauth_only(self) -> bool:
        return self.password_hash is None
