from __future__ import annotations

import uuid

from pydantic import BaseModel, Field


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterRequest(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=320)
    password: str = Field(min_length=1, max_length=128)
    name: str = Field(min_length=1, max_length=200)


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=128)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(max_length=128)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(max_length=128)


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=1)


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    avatar: str | None = None
    xp: int
    level: int
    xp_to_next_level: int
    badges: list[str]
    email_verified: bool
    created_at: str | None = None


class AuthResponse(BaseModel):
    user: UserResponse


class CsrfResponse(BaseModel):
    csrf_token: str


class LeaderboardEntry(BaseModel):
    rank: int
    id: str
    name: str
    avatar: str | None = None
    xp: int
    level: int
    badges: list[str]


class ChangeEmailRequest(BaseModel):
    new_email: str = Field(pattern=EMAIL_PATTERN, max_length=320)
    password: str = Field(min_length=1, max_length=128)


class AvatarRequest(BaseModel):
    file_id: uuid.UUID


class ProfileUpdateResponse(BaseModel):
    ok: bool
    message: str | None = None
    user: UserResponse
