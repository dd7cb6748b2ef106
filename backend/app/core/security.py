from __future__ import annotations

import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.cookies import ACCESS_COOKIE
from app.core.errors import ErrorCode, bad_request, forbidden, unauthorized
from app.db.session import get_db
from app.models.user import STAFF_ROLES, User, UserRole


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False


def validate_password_strength(password: str) -> None:
    min_len = int(settings.password_min_length)
    if len(password or "") < min_len:
        raise bad_request(f"Password must be at least {min_len} characters", code=ErrorCode.VALIDATION_ERROR)
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        raise bad_request("Password must contain letters and digits", code=ErrorCode.VALIDATION_ERROR)


def generate_opaque_token() -> str:
    return secrets.token_hex(32)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(*, user_id: str, role: str) -> str:
    now = _now()
    payload = {
        "sub": user_id,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_minutes),
        "iss": settings.jwt_issuer,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_refresh_token(*, user_id: str) -> tuple[str, datetime]:
    now = _now()
    expires_at = now + timedelta(days=settings.jwt_refresh_token_days)
    payload = {
        "sub": user_id,
        "type": "refresh",
        "iat": now,
        "exp": expires_at,
        "iss": settings.jwt_issuer,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.refresh_secret, algorithm=settings.jwt_algorithm), expires_at


def decode_refresh_token(token: str) -> dict:
    """Raises jose errors; callers map them to 401."""
    payload = jwt.decode(token, settings.refresh_secret, algorithms=[settings.jwt_algorithm], issuer=settings.jwt_issuer)
    if payload.get("type") != "refresh":
        raise JWTError("not a refresh token")
    return payload


def _token_from_request(request: Request, bearer: str | None) -> str | None:
    # cookie wins over the Authorization header
    return request.cookies.get(ACCESS_COOKIE) or bearer or None


def _resolve_user(db: Session, token: str) -> User:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
        )
    except ExpiredSignatureError as e:
        raise unauthorized("Token expired", code=ErrorCode.TOKEN_EXPIRED) from e
    except JWTError as e:
        raise unauthorized("Invalid token", code=ErrorCode.TOKEN_INVALID) from e

    if payload.get("type") != "access":
        raise unauthorized("Invalid token type", code=ErrorCode.TOKEN_INVALID)

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError as e:
        raise unauthorized("Invalid token", code=ErrorCode.TOKEN_INVALID) from e

    user = db.scalar(select(User).where(User.id == user_id))
    if user is None or user.deleted_at is not None:
        raise unauthorized("User not found")
    return user


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    token: str | None = Depends(oauth2_scheme),
) -> User:
    raw = _token_from_request(request, token)
    if not raw:
        raise unauthorized("Authentication required")

    user = _resolve_user(db, raw)
    request.state.user_id = str(user.id)
    return user


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
    token: str | None = Depends(oauth2_scheme),
) -> User | None:
    raw = _token_from_request(request, token)
    if not raw:
        return None
    try:
        user = _resolve_user(db, raw)
    except HTTPException:
        # anonymous access continues when the token is stale
        return None
    request.state.user_id = str(user.id)
    return user


def require_roles(*roles: UserRole):
    def _dep(user: User = Depends(get_current_user)) -> User:
        # admin passes every role check
        if user.role == UserRole.ADMIN:
            return user
        if user.role not in roles:
            raise forbidden("Insufficient permissions")
        return user

    return _dep


require_staff = require_roles(*STAFF_ROLES)
require_admin = require_roles(UserRole.ADMIN)
