from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from jose import JWTError
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.errors import ErrorCode, bad_request, conflict, unauthorized
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    generate_opaque_token,
    hash_password,
    validate_password_strength,
    verify_password,
)
from app.db.base import as_naive_utc, utcnow
from app.models.auth_token import EmailVerificationToken, PasswordResetToken, RefreshToken
from app.models.user import User, UserRole
from app.services.gamification import badges_for_xp, level_for_xp, profile_progress


log = logging.getLogger(__name__)

PASSWORD_RESET_TTL = timedelta(hours=1)
EMAIL_VERIFICATION_TTL = timedelta(hours=24)


def normalize_email(email: str) -> str:
    return str(email or "").strip().lower()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == normalize_email(email)))


def create_user(
    db: Session,
    *,
    email: str,
    password: str,
    name: str,
    role: UserRole = UserRole.STUDENT,
    email_verified: bool = False,
) -> User:
    validate_password_strength(password)
    if get_user_by_email(db, email) is not None:
        raise conflict("Email already registered")

    user = User(
        email=normalize_email(email),
        name=str(name).strip(),
        role=role,
        xp=0,
        email_verified=email_verified,
        password_hash=hash_password(password),
    )
    db.add(user)
    db.flush()
    return user


def create_email_verification(db: Session, *, user: User) -> str:
    # only the newest link stays valid
    db.execute(
        update(EmailVerificationToken)
        .where(EmailVerificationToken.user_id == user.id, EmailVerificationToken.used.is_(False))
        .values(used=True)
    )
    token = generate_opaque_token()
    db.add(EmailVerificationToken(token=token, user_id=user.id, expires_at=utcnow() + EMAIL_VERIFICATION_TTL))
    # no mailer: the link is logged for operators
    log.info("email verification token issued for user %s", user.id)
    return token


def authenticate(db: Session, *, email: str, password: str) -> User:
    user = get_user_by_email(db, email)
    if user is None or user.deleted_at is not None or not verify_password(password, user.password_hash):
        raise unauthorized("Invalid credentials")
    return user


def issue_session(db: Session, *, user: User) -> tuple[str, str]:
    access = create_access_token(user_id=str(user.id), role=user.role.value)
    refresh, expires_at = create_refresh_token(user_id=str(user.id))
    db.add(RefreshToken(token=refresh, user_id=user.id, expires_at=as_naive_utc(expires_at), revoked=False))
    user.last_active_at = utcnow()
    return access, refresh


def rotate_refresh_token(db: Session, *, raw_token: str | None) -> tuple[User, str, str]:
    if not raw_token:
        raise unauthorized("Refresh token missing")
    try:
        decode_refresh_token(raw_token)
    except JWTError as e:
        raise unauthorized("Invalid refresh token", code=ErrorCode.TOKEN_INVALID) from e

    stored = db.scalar(select(RefreshToken).where(RefreshToken.token == raw_token))
    if stored is None or stored.revoked or as_naive_utc(stored.expires_at) <= utcnow():
        raise unauthorized("Invalid refresh token", code=ErrorCode.TOKEN_INVALID)

    user = db.get(User, stored.user_id)
    if user is None or user.deleted_at is not None:
        raise unauthorized("User not found")

    stored.revoked = True
    access, refresh = issue_session(db, user=user)
    return user, access, refresh


def revoke_refresh_token(db: Session, *, raw_token: str | None) -> None:
    if not raw_token:
        return
    db.execute(update(RefreshToken).where(RefreshToken.token == raw_token).values(revoked=True))


def revoke_all_refresh_tokens(db: Session, *, user_id: uuid.UUID) -> None:
    db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
        .values(revoked=True)
    )


def change_password(db: Session, *, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise bad_request("Current password is incorrect")
    validate_password_strength(new_password)
    user.password_hash = hash_password(new_password)
    revoke_all_refresh_tokens(db, user_id=user.id)


def request_password_reset(db: Session, *, email: str) -> str | None:
    """Returns the token when the account exists; callers never reveal which."""
    user = get_user_by_email(db, email)
    if user is None or user.deleted_at is not None:
        return None
    token = generate_opaque_token()
    db.add(PasswordResetToken(token=token, user_id=user.id, expires_at=utcnow() + PASSWORD_RESET_TTL))
    log.info("password reset token issued for user %s", user.id)
    return token


def reset_password(db: Session, *, token: str, new_password: str) -> User:
    row = db.scalar(select(PasswordResetToken).where(PasswordResetToken.token == token))
    if row is None or row.used or as_naive_utc(row.expires_at) <= utcnow():
        raise bad_request("Invalid or expired reset token")
    user = db.get(User, row.user_id)
    if user is None or user.deleted_at is not None:
        raise bad_request("Invalid or expired reset token")

    validate_password_strength(new_password)
    user.password_hash = hash_password(new_password)
    row.used = True
    revoke_all_refresh_tokens(db, user_id=user.id)
    return user


def verify_email(db: Session, *, token: str) -> User:
    row = db.scalar(select(EmailVerificationToken).where(EmailVerificationToken.token == token))
    if row is None or row.used or as_naive_utc(row.expires_at) <= utcnow():
        raise bad_request("Invalid or expired verification token")
    user = db.get(User, row.user_id)
    if user is None:
        raise bad_request("Invalid or expired verification token")
    row.used = True
    user.email_verified = True
    return user


def resend_verification(db: Session, *, user: User) -> str:
    if user.email_verified:
        raise bad_request("Email already verified")
    return create_email_verification(db, user=user)


def change_email(db: Session, *, user: User, new_email: str, password: str) -> str:
    """Switches the login email and asks for verification again. Returns the previous email."""
    if not verify_password(password, user.password_hash):
        raise bad_request("Incorrect password")

    old_email = user.email
    email = normalize_email(new_email)
    if email != old_email and get_user_by_email(db, email) is not None:
        raise bad_request("Email already in use", code=ErrorCode.ALREADY_EXISTS)

    user.email = email
    user.email_verified = False
    create_email_verification(db, user=user)
    return old_email


def user_profile(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role.value,
        "avatar": user.avatar,
        **profile_progress(user),
        "email_verified": bool(user.email_verified),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def leaderboard(db: Session, *, limit: int) -> list[dict]:
    users = db.scalars(
        select(User).where(User.deleted_at.is_(None)).order_by(User.xp.desc(), User.created_at.asc()).limit(limit)
    ).all()
    return [
        {
            "rank": i + 1,
            "id": str(u.id),
            "name": u.name,
            "avatar": u.avatar,
            "xp": int(u.xp or 0),
            "level": level_for_xp(int(u.xp or 0)),
            "badges": badges_for_xp(int(u.xp or 0)),
        }
        for i, u in enumerate(users)
    ]
