from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.core.errors import bad_request, not_found
from app.core.rate_limit import rate_limit
from app.core.security import require_admin, require_staff
from app.db.base import as_naive_utc, utcnow
from app.db.session import get_db
from app.models.attempt import QuizAttempt
from app.models.audit import AuditLog
from app.models.material import Material
from app.models.progress import MaterialView
from app.models.quiz import Quiz
from app.models.topic import ContentStatus, Topic
from app.models.user import User, UserRole
from app.schemas.admin import AdminUserCreateRequest, RoleUpdateRequest
from app.schemas.content import OptionUpdateRequest
from app.schemas.topic import TopicCreateRequest, TopicUpdateRequest
from app.services import auth as auth_service
from app.services.audit import AuditAction, AuditResource, audit_log
from app.services.content import ContentService
from app.services.presenters import option_dict, topic_summary
from app.services.topics import TopicService

log = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": int(total),
        "total_pages": math.ceil(int(total) / limit) if limit else 0,
    }


def _live_user(db: Session, user_id: uuid.UUID) -> User:
    u = db.scalar(select(User).where(User.id == user_id, User.deleted_at.is_(None)))
    if u is None:
        raise not_found("User not found")
    return u


def _audit_dict(row: AuditLog) -> dict:
    return {
        "id": str(row.id),
        "user_id": str(row.user_id) if row.user_id else None,
        "action": row.action,
        "resource": row.resource,
        "resource_id": row.resource_id,
        "metadata": row.meta,
        "ip_address": row.ip_address,
        "user_agent": row.user_agent,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


def _count(db: Session, stmt) -> int:
    return int(db.scalar(stmt) or 0)


@router.get("/stats")
def stats(db: Session = Depends(get_db), _: User = Depends(require_staff)):
    week_ago = utcnow() - timedelta(days=7)
    live_users = User.deleted_at.is_(None)

    by_role = dict(
        db.execute(select(User.role, func.count(User.id)).where(live_users).group_by(User.role)).all()
    )
    recent_logs = db.scalars(select(AuditLog).order_by(AuditLog.created_at.desc()).limit(10)).all()

    return {
        "users": {
            "total": _count(db, select(func.count(User.id)).where(live_users)),
            "by_role": {role.value: int(by_role.get(role, 0)) for role in UserRole},
            "new_last_7_days": _count(db, select(func.count(User.id)).where(live_users, User.created_at >= week_ago)),
        },
        "topics": {
            "total": _count(db, select(func.count(Topic.id))),
            "published": _count(db, select(func.count(Topic.id)).where(Topic.status == ContentStatus.Published)),
        },
        "materials": {
            "total": _count(db, select(func.count(Material.id))),
            "published": _count(db, select(func.count(Material.id)).where(Material.status == ContentStatus.Published)),
        },
        "quizzes": {
            "total": _count(db, select(func.count(Quiz.id))),
            "published": _count(db, select(func.count(Quiz.id)).where(Quiz.status == ContentStatus.Published)),
        },
        "attempts": {
            "total": _count(db, select(func.count(QuizAttempt.id))),
            "last_7_days": _count(db, select(func.count(QuizAttempt.id)).where(QuizAttempt.created_at >= week_ago)),
        },
        "recent_activity": [_audit_dict(r) for r in recent_logs],
    }


# users


@router.get("/users")
def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str | None = Query(default=None, max_length=200),
    role: UserRole | None = None,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
):
    stmt = select(User).where(User.deleted_at.is_(None))
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(User.email.ilike(pattern), User.name.ilike(pattern)))
    if role is not None:
        stmt = stmt.where(User.role == role)

    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(stmt.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit)).all()
    return {
        "users": [auth_service.user_profile(u) for u in rows],
        "pagination": _pagination(page, limit, total),
    }


@router.get("/users/{user_id}")
def get_user(user_id: uuid.UUID, db: Session = Depends(get_db), _: User = Depends(require_admin)):
    u = _live_user(db, user_id)
    out = auth_service.user_profile(u)
    out["last_active_at"] = u.last_active_at.isoformat() if u.last_active_at else None
    out["quiz_attempts"] = _count(db, select(func.count(QuizAttempt.id)).where(QuizAttempt.user_id == u.id))
    out["materials_viewed"] = _count(db, select(func.count(MaterialView.id)).where(MaterialView.user_id == u.id))
    return out


@router.put("/users/{user_id}/role")
def set_role(
    user_id: uuid.UUID,
    body: RoleUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    current: User = Depends(require_admin),
):
    if user_id == current.id:
        raise bad_request("Cannot change your own role")

    u = _live_user(db, user_id)
    prev_role = u.role
    if prev_role == UserRole.ADMIN and body.role != UserRole.ADMIN:
        admins = _count(
            db, select(func.count(User.id)).where(User.role == UserRole.ADMIN, User.deleted_at.is_(None))
        )
        if admins <= 1:
            raise bad_request("Cannot demote the last admin")

    u.role = body.role
    audit_log(
        db=db,
        request=request,
        user_id=current.id,
        action=AuditAction.UPDATE,
        resource=AuditResource.USER,
        resource_id=u.id,
        metadata={"role": {"from": prev_role.value, "to": body.role.value}},
    )
    db.commit()
    db.refresh(u)
    return auth_service.user_profile(u)


@router.put("/users/{user_id}/verify")
def verify_user(
    user_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    current: User = Depends(require_admin),
):
    u = _live_user(db, user_id)
    u.email_verified = True
    audit_log(
        db=db,
        request=request,
        user_id=current.id,
        action=AuditAction.UPDATE,
        resource=AuditResource.USER,
        resource_id=u.id,
        metadata={"email_verified": True},
    )
    db.commit()
    db.refresh(u)
    return auth_service.user_profile(u)


@router.post("/users")
def create_user(
    body: AdminUserCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    current: User = Depends(require_admin),
    _: object = rate_limit(key_prefix="admin_create_user", limit=20, window_seconds=60),
):
    u = auth_service.create_user(
        db,
        email=body.email,
        password=body.password,
        name=body.name,
        role=body.role,
        email_verified=True,
    )
    audit_log(
        db=db,
        request=request,
        user_id=current.id,
        action=AuditAction.CREATE,
        resource=AuditResource.USER,
        resource_id=u.id,
        metadata={"email": u.email, "role": u.role.value},
    )
    db.commit()
    db.refresh(u)
    return auth_service.user_profile(u)


@router.delete("/users/{user_id}")
def delete_user(
    user_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    current: User = Depends(require_admin),
    _: object = rate_limit(key_prefix="admin_delete_user", limit=10, window_seconds=60),
):
    if user_id == current.id:
        raise bad_request("Cannot delete yourself")

    u = _live_user(db, user_id)
    u.deleted_at = utcnow()
    auth_service.revoke_all_refresh_tokens(db, user_id=u.id)
    audit_log(
        db=db,
        request=request,
        user_id=current.id,
        action=AuditAction.DELETE,
        resource=AuditResource.USER,
        resource_id=u.id,
        metadata={"email": u.email},
    )
    db.commit()
    return {"ok": True}


# audit


@router.get("/audit-logs")
def audit_logs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: uuid.UUID | None = None,
    action: str | None = Query(default=None, max_length=32),
    resource: str | None = Query(default=None, max_length=32),
    date_from: datetime | None = Query(default=None, alias="from"),
    date_to: datetime | None = Query(default=None, alias="to"),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
):
    stmt = select(AuditLog)
    if user_id is not None:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action.upper())
    if resource:
        stmt = stmt.where(AuditLog.resource == resource.lower())
    if date_from is not None:
        stmt = stmt.where(AuditLog.created_at >= as_naive_utc(date_from))
    if date_to is not None:
        stmt = stmt.where(AuditLog.created_at <= as_naive_utc(date_to))

    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(stmt.order_by(AuditLog.created_at.desc()).offset((page - 1) * limit).limit(limit)).all()
    return {"logs": [_audit_dict(r) for r in rows], "pagination": _pagination(page, limit, total)}


# topic content


@router.get("/content/topics")
def list_content_topics(db: Session = Depends(get_db), _: User = Depends(require_staff)):
    return {"topics": TopicService(db).topic_tree()}


@router.post("/content/topics")
def create_topic(
    body: TopicCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    current: User = Depends(require_staff),
):
    topic = TopicService(db).create_topic(body.model_dump())
    audit_log(
        db=db,
        request=request,
        user_id=current.id,
        action=AuditAction.CREATE,
        resource=AuditResource.TOPIC,
        resource_id=topic.id,
        metadata={"slug": topic.slug, "name": topic.name},
    )
    db.commit()
    db.refresh(topic)
    return topic_summary(topic, None)


@router.put("/content/topics/{topic_id}")
def update_topic(
    topic_id: uuid.UUID,
    body: TopicUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    current: User = Depends(require_staff),
):
    data = body.model_dump(exclude_unset=True)
    topic = TopicService(db).update_topic(topic_id, data)
    audit_log(
        db=db,
        request=request,
        user_id=current.id,
        action=AuditAction.UPDATE,
        resource=AuditResource.TOPIC,
        resource_id=topic.id,
        metadata={"fields": sorted(data.keys())},
    )
    db.commit()
    db.refresh(topic)
    return topic_summary(topic, None)


@router.delete("/content/topics/{topic_id}")
def delete_topic(
    topic_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    current: User = Depends(require_staff),
):
    topic = TopicService(db).delete_topic(topic_id)
    audit_log(
        db=db,
        request=request,
        user_id=current.id,
        action=AuditAction.DELETE,
        resource=AuditResource.TOPIC,
        resource_id=topic_id,
        metadata={"slug": topic.slug},
    )
    db.commit()
    return {"ok": True}


@router.put("/content/options/{option_id}")
def update_option(
    option_id: uuid.UUID,
    body: OptionUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    current: User = Depends(require_staff),
):
    data = body.model_dump(exclude_unset=True)
    option = ContentService(db).update_option(option_id, data)
    audit_log(
        db=db,
        request=request,
        user_id=current.id,
        action=AuditAction.UPDATE,
        resource=AuditResource.OPTION,
        resource_id=option.id,
        metadata={"question_id": str(option.question_id), "fields": sorted(data.keys())},
    )
    db.commit()
    db.refresh(option)
    return option_dict(option)


@router.delete("/content/options/{option_id}")
def delete_option(
    option_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    current: User = Depends(require_staff),
):
    option = ContentService(db).delete_option(option_id)
    audit_log(
        db=db,
        request=request,
        user_id=current.id,
        action=AuditAction.DELETE,
        resource=AuditResource.OPTION,
        resource_id=option_id,
        metadata={"question_id": str(option.question_id)},
    )
    db.commit()
    return {"deleted": True}


@router.get("/content/export")
def export_content(db: Session = Depends(get_db), _: User = Depends(require_admin)):
    data = ContentService(db).export_tree()
    log.info("content export: %s root topics", len(data))
    return JSONResponse(content=data, headers={"Content-Disposition": "attachment; filename=content.json"})
