"""
Account service: email verification, registration, login and token rotation.

Flow:
1. send_verification_code(email)  -> code emailed, valid for 10 minutes
2. verify_email(email, code)      -> verification row flagged
3. register(email, password, ...) -> requires the flag above
4. login / refresh_tokens / logout
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from cryptography.fernet import InvalidToken
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from reindeer_letter.core.config import settings
from reindeer_letter.core.errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from reindeer_letter.core.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    decrypt_token,
    encrypt_token,
    generate_verification_code,
    hash_password,
    verify_password,
)
from reindeer_letter.models.email_verification import EmailVerification
from reindeer_letter.models.user import User
from reindeer_letter.modules.notify.email_service import send_verification_email

logger = logging.getLogger(__name__)


@dataclass
class IssuedTokens:
    access_token: str
    refresh_token: str


class AuthService:
    """
    Usage:
        service = AuthService(db)
        user = await service.authenticate(email, password)
        tokens = await service.login(user)
    """

    def __init__(
        self,
        session: AsyncSession,
        send_code: Optional[Callable[[str, str], Awaitable[bool]]] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session = session
        self.send_code = send_code or send_verification_email
        self.clock = clock

    # Lookups

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_user_by_nickname(self, nickname: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.nickname == nickname))
        return result.scalar_one_or_none()

    async def get_user(self, user_id: int) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    # Email verification

    async def send_verification_code(self, email: str) -> str:
        """
        Create or replace the verification code for an email and send it.

        Returns:
            The generated code (callers must not echo it to clients)

        Raises:
            DependencyError: If the email could not be sent
        """
        code = generate_verification_code(settings.VERIFICATION_CODE_LENGTH)
        expires_at = self.clock() + timedelta(minutes=settings.VERIFICATION_CODE_TTL_MINUTES)

        verification = await self.session.get(EmailVerification, email)
        if verification is None:
            verification = EmailVerification(email=email, code=code, expires_at=expires_at, verified=False)
            self.session.add(verification)
        else:
            verification.code = code
            verification.expires_at = expires_at
            verification.verified = False
        await self.session.flush()

        sent = await self.send_code(email, code)
        if not sent:
            raise DependencyError("Could not send the verification email. Please try again.")

        logger.info("Verification code issued", extra={"email_domain": email.split("@")[-1]})
        return code

    async def verify_email(self, email: str, code: str) -> None:
        """
        Raises:
            NotFoundError: No code was ever requested for this email
            ValidationError: Code expired or does not match
        """
        verification = await self.session.get(EmailVerification, email)
        if verification is None:
            raise NotFoundError("No verification request found for this email.")

        if verification.is_expired(self.clock()):
            raise ValidationError("The verification code has expired.")

        if verification.code != code.strip().upper():
            raise ValidationError("The verification code is incorrect.")

        verification.verified = True
        await self.session.flush()

    # Registration

    async def check_email_available(self, email: str) -> None:
        if await self.get_user_by_email(email) is not None:
            raise ConflictError("This email is already in use.")

    async def check_nickname_available(self, nickname: str) -> None:
        if await self.get_user_by_nickname(nickname) is not None:
            raise ConflictError("This nickname is already in use.")

    async def register(
        self,
        email: str,
        password: str,
        nickname: str,
        profile_image_url: Optional[str] = None,
    ) -> User:
        """
        Create a local account.

        Raises:
            ValidationError: Email not verified
            ConflictError: Email or nickname already taken
        """
        verification = await self.session.get(EmailVerification, email)
        if verification is None or not verification.verified:
            raise ValidationError("Email verification is required.")

        await self.check_email_available(email)
        await self.check_nickname_available(nickname)

        user = User(
            email=email,
            nickname=nickname,
            password_hash=hash_password(password),
            profile_image_url=profile_image_url,
        )
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError:
            # Lost a race against a concurrent registration
            raise ConflictError("Email or nickname already in use.")
        await self.session.refresh(user)

        logger.info(f"User {user.id} registered", extra={"user_id": user.id})
        return user

    # Sessions

    async def authenticate(self, email: str, password: str) -> User:
        user = await self.get_user_by_email(email)
        if user is None or user.is_oauth_only or not verify_password(password, user.password_hash):
            raise UnauthorizedError("Invalid email or password.")
        return user

    async def _issue_tokens(self, user: User) -> IssuedTokens:
        access_token = create_access_token(user.id, user.email)
        refresh_token = create_refresh_token(user.id, user.email)
        user.encrypted_refresh_token = encrypt_token(refresh_token)
        await self.session.flush()
        return IssuedTokens(access_token=access_token, refresh_token=refresh_token)

    async def login(self, user: User) -> IssuedTokens:
        tokens = await self._issue_tokens(user)
        logger.info(f"User {user.id} logged in", extra={"user_id": user.id})
        return tokens

    async def refresh_tokens(self, refresh_token: Optional[str]) -> IssuedTokens:
        """
        Rotate a refresh token. The presented token must be the one stored.

        Raises:
            UnauthorizedError: On any mismatch, expiry or malformed token
        """
        if not refresh_token:
            raise UnauthorizedError("Refresh token missing.")

        payload = decode_token(refresh_token, expected_type=REFRESH_TOKEN_TYPE)
        if payload is None:
            raise UnauthorizedError("Invalid refresh token.")

        user = await self.session.get(User, int(payload["sub"]))
        if user is None or not user.encrypted_refresh_token:
            raise UnauthorizedError("Invalid refresh token.")

        try:
            stored = decrypt_token(user.encrypted_refresh_token)
        except InvalidToken:
            raise UnauthorizedError("Invalid refresh token.")

        if stored != refresh_token:
            raise UnauthorizedError("Invalid refresh token.")

        return await self._issue_tokens(user)

    async def logout(self, user_id: int) -> None:
        user = await self.get_user(user_id)
        user.encrypted_refresh_token = None
        await self.session.flush()
        logger.info(f"User {user_id} logged out", extra={"user_id": user_id})
