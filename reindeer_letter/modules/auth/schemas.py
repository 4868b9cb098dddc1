"""Pydantic models for authentication requests and responses."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class SendCodeRequest(BaseModel):
    email: EmailStr


class VerifyEmailRequest(BaseModel):
    email: EmailStr
    code: str = Field(min_length=1, max_length=16)


class RegisterRequest(BaseModel):
    """Local sign-up. The email must have been verified first."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=20)
    nickname: str = Field(min_length=2, max_length=20)
    profile_image_url: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    """Body fallback for clients that cannot send the refresh cookie."""

    refresh_token: Optional[str] = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    public_id: str
    email: str
    nickname: str
    profile_image_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AvailabilityResponse(BaseModel):
    available: bool = True


class MessageResponse(BaseModel):
    message: str


class VerifiedResponse(BaseModel):
    verified: bool = True
