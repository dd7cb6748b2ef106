from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.cookies import REFRESH_COOKIE, clear_auth_cookies, set_auth_cookies, set_csrf_cookie
from app.core.csrf import generate_csrf_token
from app.core.errors import forbidden
from app.core.rate_limit import rate_limit
from app.core.security import get_current_user, get_optional_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.auth import (
    AuthResponse,
    AvatarRequest,
    ChangeEmailRequest,
    ChangePasswordRequest,
    CsrfResponse,
    ForgotPasswordRequest,
    LeaderboardEntry,
    LoginRequest,
    ProfileUpdateResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
    VerifyEmailRequest,
)
from app.services import auth as auth_service
from app.services import files as file_service
from app.services.audit import AuditAction, AuditResource, audit_log


router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/csrf", response_model=CsrfResponse)
def csrf(response: Response):
    token = generate_csrf_token()
    set_csrf_cookie(response, token)
    return {"csrf_token": token}


@router.post("/register", response_model=AuthResponse)
def register(
    request: Request,
    response: Response,
    payload: RegisterRequest,
    db: Session = Depends(get_db),
    _: object = rate_limit(key_prefix="auth_register", limit=10, window_seconds=60),
):
    if not settings.allow_public_register:
        raise forbidden("Registration is disabled")

    user = auth_service.create_user(db, email=payload.email, password=payload.password, name=payload.name)
    auth_service.create_email_verification(db, user=user)
    access, refresh = auth_service.issue_session(db, user=user)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.CREATE,
        resource=AuditResource.USER,
        resource_id=user.id,
        metadata={"email": user.email, "self_registered": True},
    )
    db.commit()
    db.refresh(user)

    set_auth_cookies(response, access_token=access, refresh_token=refresh)
    return {"user": auth_service.user_profile(user)}


@router.post("/login", response_model=AuthResponse)
def login(
    request: Request,
    response: Response,
    payload: LoginRequest,
    db: Session = Depends(get_db),
    _: object = rate_limit(key_prefix="auth_login", limit=20, window_seconds=60),
):
    user = auth_service.authenticate(db, email=payload.email, password=payload.password)
    access, refresh = auth_service.issue_session(db, user=user)
    audit_log(db=db, request=request, user_id=user.id, action=AuditAction.LOGIN, resource=AuditResource.USER, resource_id=user.id)
    db.commit()
    db.refresh(user)

    set_auth_cookies(response, access_token=access, refresh_token=refresh)
    return {"user": auth_service.user_profile(user)}


@router.post("/refresh", response_model=AuthResponse)
def refresh(request: Request, response: Response, db: Session = Depends(get_db)):
    user, access, new_refresh = auth_service.rotate_refresh_token(db, raw_token=request.cookies.get(REFRESH_COOKIE))
    db.commit()
    db.refresh(user)

    set_auth_cookies(response, access_token=access, refresh_token=new_refresh)
    return {"user": auth_service.user_profile(user)}


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    auth_service.revoke_refresh_token(db, raw_token=request.cookies.get(REFRESH_COOKIE))
    if user is not None:
        audit_log(db=db, request=request, user_id=user.id, action=AuditAction.LOGOUT, resource=AuditResource.USER, resource_id=user.id)
    db.commit()

    clear_auth_cookies(response)
    return {"ok": True}


@router.post("/logout-all")
def logout_all(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    auth_service.revoke_all_refresh_tokens(db, user_id=user.id)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.LOGOUT,
        resource=AuditResource.USER,
        resource_id=user.id,
        metadata={"all_sessions": True},
    )
    db.commit()

    clear_auth_cookies(response)
    return {"ok": True}


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return auth_service.user_profile(user)


@router.put("/password")
def change_password(
    request: Request,
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    auth_service.change_password(
        db,
        user=user,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.UPDATE,
        resource=AuditResource.USER,
        resource_id=user.id,
        metadata={"field": "password"},
    )
    db.commit()
    return {"ok": True}


@router.post("/forgot-password")
def forgot_password(
    payload: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    _: object = rate_limit(key_prefix="auth_forgot", limit=5, window_seconds=60),
):
    auth_service.request_password_reset(db, email=payload.email)
    db.commit()
    # same answer whether or not the account exists
    return {"ok": True, "message": "If the email is registered, a reset link has been sent"}


@router.post("/reset-password")
def reset_password(
    request: Request,
    payload: ResetPasswordRequest,
    db: Session = Depends(get_db),
    _: object = rate_limit(key_prefix="auth_reset", limit=10, window_seconds=60),
):
    user = auth_service.reset_password(db, token=payload.token, new_password=payload.password)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.UPDATE,
        resource=AuditResource.USER,
        resource_id=user.id,
        metadata={"field": "password", "via": "reset"},
    )
    db.commit()
    return {"ok": True}


@router.post("/verify-email")
def verify_email(payload: VerifyEmailRequest, db: Session = Depends(get_db)):
    auth_service.verify_email(db, token=payload.token)
    db.commit()
    return {"ok": True}


@router.post("/resend-verification")
def resend_verification(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    _: object = rate_limit(key_prefix="auth_resend", limit=5, window_seconds=60),
):
    auth_service.resend_verification(db, user=user)
    db.commit()
    return {"ok": True, "message": "Verification email sent"}


@router.put("/email", response_model=ProfileUpdateResponse)
def change_email(
    request: Request,
    payload: ChangeEmailRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    old_email = auth_service.change_email(db, user=user, new_email=payload.new_email, password=payload.password)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.UPDATE,
        resource=AuditResource.USER,
        resource_id=user.id,
        metadata={"field": "email", "old_email": old_email, "new_email": user.email},
    )
    db.commit()
    db.refresh(user)
    return {
        "ok": True,
        "message": "Email changed. Please verify your new email address.",
        "user": auth_service.user_profile(user),
    }


@router.post("/avatar", response_model=ProfileUpdateResponse)
def set_avatar(payload: AvatarRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    file_service.set_avatar(db, file_id=payload.file_id, user=user)
    db.commit()
    db.refresh(user)
    return {"ok": True, "user": auth_service.user_profile(user)}


@router.delete("/avatar", response_model=ProfileUpdateResponse)
def remove_avatar(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    user.avatar = None
    db.commit()
    db.refresh(user)
    return {"ok": True, "user": auth_service.user_profile(user)}


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
def leaderboard(limit: int = Query(default=50, ge=1, le=100), db: Session = Depends(get_db)):
    return auth_service.leaderboard(db, limit=limit)
