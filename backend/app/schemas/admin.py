from __future__ import annotations

from pydantic import BaseModel, Field

from app.models.user import UserRole
from app.schemas.auth import EMAIL_PATTERN


class RoleUpdateRequest(BaseModel):
    role: UserRole


class AdminUserCreateRequest(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=320)
    password: str = Field(min_length=1, max_length=128)
    name: str = Field(min_length=1, max_length=200)
    role: UserRole = UserRole.STUDENT
