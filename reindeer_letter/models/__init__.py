"""
Database models package.

Import all models here so Alembic can discover them for migrations.
"""

from reindeer_letter.models.user import User
from reindeer_letter.models.letter import Letter, LetterCategory, LetterState
from reindeer_letter.models.email_verification import EmailVerification

__all__ = [
    "User",
    "Letter",
    "LetterCategory",
    "LetterState",
    "EmailVerification",
]
