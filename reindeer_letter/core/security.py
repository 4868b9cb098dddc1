"""
Security utilities for password hashing, JWT handling and refresh token encryption.

CRITICAL SECURITY REQUIREMENTS:
1. NEVER log tokens (access_token, refresh_token) or passwords
2. ALWAYS encrypt refresh tokens before database storage
3. ALWAYS use parameterized queries (SQLAlchemy ORM handles this)
"""

import secrets
import string
from datetime import datetime, timedelta
from typing import Optional
from cryptography.fernet import Fernet
from jose import jwt, JWTError
from passlib.context import CryptContext

from reindeer_letter.core.config import settings

ALGORITHM = "HS256"

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class TokenEncryption:
    """
    Symmetric encryption for refresh tokens using Fernet (AES-128-CBC + HMAC).

    A leaked database dump must not hand out live refresh tokens, so the
    stored copy is always encrypted.
    """

    def __init__(self, encryption_key: str):
        """
        Initialize with encryption key.

        Key must be 44-character base64-encoded string.
        Generate with: Fernet.generate_key().decode()
        """
        self._fernet = Fernet(encryption_key.encode())

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt plaintext string.

        Args:
            plaintext: Refresh token or other sensitive string

        Returns:
            Base64-encoded encrypted string (safe for database storage)
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty string")

        encrypted_bytes = self._fernet.encrypt(plaintext.encode())
        return encrypted_bytes.decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt ciphertext string.

        Raises:
            cryptography.fernet.InvalidToken: If decryption fails
        """
        if not ciphertext:
            raise ValueError("Cannot decrypt empty string")

        decrypted_bytes = self._fernet.decrypt(ciphertext.encode())
        return decrypted_bytes.decode()


# Global encryption instance
token_encryptor = TokenEncryption(settings.ENCRYPTION_KEY)


def encrypt_token(token: str) -> str:
    """Encrypt a refresh token for database storage."""
    return token_encryptor.encrypt(token)


def decrypt_token(encrypted_token: str) -> str:
    """
    Decrypt a refresh token from the database.

    WARNING: Never log the decrypted token!
    """
    return token_encryptor.decrypt(encrypted_token)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    """Check a password against its hash. OAuth-only accounts have no hash."""
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


def _create_token(user_id: int, email: str, token_type: str, expires_delta: timedelta) -> str:
    now = datetime.utcnow()
    payload = {
        "sub": str(user_id),
        "email": email,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
        # Unique id so two tokens minted in the same second still differ
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(user_id: int, email: str) -> str:
    """
    Create a short-lived access token for the Authorization header.

    Usage:
        token = create_access_token(user.id, user.email)
        headers = {"Authorization": f"Bearer {token}"}
    """
    return _create_token(
        user_id,
        email,
        ACCESS_TOKEN_TYPE,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user_id: int, email: str) -> str:
    """Create a long-lived refresh token (stored encrypted, sent as a cookie)."""
    return _create_token(
        user_id,
        email,
        REFRESH_TOKEN_TYPE,
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def decode_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> Optional[dict]:
    """
    Verify and decode a JWT.

    Args:
        token: JWT string
        expected_type: "access" or "refresh"

    Returns:
        Decoded payload dict if valid, None if invalid/expired/wrong type
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

    if payload.get("type") != expected_type or not payload.get("sub"):
        return None
    return payload


def generate_public_id() -> str:
    """Opaque, url-safe identifier for referencing users externally."""
    return secrets.token_urlsafe(8)


def generate_verification_code(length: int = 6) -> str:
    """
    Generate a one-time email verification code.

    Returns:
        Uppercase alphanumeric string, e.g. "K3Z9QA"
    """
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_encryption_key() -> str:
    """
    Generate new Fernet encryption key.

    WARNING: Only use during initial setup. Rotating the key invalidates every
    stored refresh token (users simply log in again).
    """
    return Fernet.generate_key().decode()
