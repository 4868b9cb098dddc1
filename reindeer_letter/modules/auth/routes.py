"""
Authentication routes - email verification, registration and token management.

Endpoints:
- POST /auth/email/send-code - Email a verification code
- POST /auth/email/verify - Check a verification code
- POST /auth/register - Create a local account
- POST /auth/login - Issue access + refresh tokens
- POST /auth/refresh - Rotate the refresh token
- POST /auth/logout - Revoke the refresh token
- GET /auth/check-email, /auth/check-nickname - Availability probes
- GET /auth/me - Current user profile
"""

from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from reindeer_letter.core.config import settings
from reindeer_letter.core.database import get_db
from reindeer_letter.core.middleware import limiter
from reindeer_letter.modules.auth.dependencies import get_current_principal
from reindeer_letter.modules.auth.schemas import (
    AvailabilityResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    SendCodeRequest,
    TokenPair,
    UserOut,
    VerifiedResponse,
    VerifyEmailRequest,
)
from reindeer_letter.modules.auth.service import AuthService
from reindeer_letter.modules.letters.access import Principal

router = APIRouter(prefix="/auth", tags=["authentication"])

REFRESH_COOKIE = "refresh_token"


def _set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=settings.is_production,  # Only send over HTTPS in production
        samesite="strict",
    )


@router.post("/email/send-code", response_model=MessageResponse)
@limiter.limit("5/minute")
async def send_code(
    request: Request,
    body: SendCodeRequest,
    db: AsyncSession = Depends(get_db),
):
    """Email a one-time verification code (replaces any previous code)."""
    await AuthService(db).send_verification_code(body.email)
    return MessageResponse(message="A verification code has been sent to your email.")


@router.post("/email/verify", response_model=VerifiedResponse)
@limiter.limit("5/minute")
async def verify_email(
    request: Request,
    body: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db),
):
    await AuthService(db).verify_email(body.email, body.code)
    return VerifiedResponse(verified=True)


@router.post("/register", response_model=UserOut, status_code=201)
@limiter.limit("5/minute")
async def register(
    request: Request,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Create a local account.

    Errors:
        400 - email not verified
        409 - email or nickname already taken
    """
    user = await AuthService(db).register(
        body.email,
        body.password,
        body.nickname,
        profile_image_url=body.profile_image_url,
    )
    return user


@router.post("/login", response_model=LoginResponse)
@limiter.limit("3/minute")
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Log in with email and password.

    Returns the access token in the body; the refresh token is set as an
    http-only cookie.
    """
    service = AuthService(db)
    user = await service.authenticate(body.email, body.password)
    tokens = await service.login(user)

    _set_refresh_cookie(response, tokens.refresh_token)
    return LoginResponse(access_token=tokens.access_token, user=UserOut.model_validate(user))


@router.post("/refresh", response_model=TokenPair)
@limiter.limit("10/minute")
async def refresh(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    refresh_cookie: Optional[str] = Cookie(default=None, alias=REFRESH_COOKIE),
    db: AsyncSession = Depends(get_db),
):
    """Rotate tokens using the refresh cookie (or a body fallback)."""
    presented = refresh_cookie or (body.refresh_token if body else None)
    tokens = await AuthService(db).refresh_tokens(presented)

    _set_refresh_cookie(response, tokens.refresh_token)
    return TokenPair(access_token=tokens.access_token, refresh_token=tokens.refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Revoke the stored refresh token and clear the cookie."""
    await AuthService(db).logout(principal.id)

    response.delete_cookie(
        REFRESH_COOKIE,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )
    return MessageResponse(message="Logged out.")


@router.get("/check-email", response_model=AvailabilityResponse)
async def check_email(
    email: str = Query(..., description="Email address to check"),
    db: AsyncSession = Depends(get_db),
):
    await AuthService(db).check_email_available(email)
    return AvailabilityResponse(available=True)


@router.get("/check-nickname", response_model=AvailabilityResponse)
async def check_nickname(
    nickname: str = Query(..., description="Nickname to check"),
    db: AsyncSession = Depends(get_db),
):
    await AuthService(db).check_nickname_available(nickname)
    return AvailabilityResponse(available=True)


@router.get("/me", response_model=UserOut)
async def me(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await AuthService(db).get_user(principal.id)
