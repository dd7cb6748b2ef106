from __future__ import annotations

import math
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.errors import forbidden, not_found
from app.models.material import Material
from app.models.topic import ContentStatus, Topic
from app.models.user import User
from app.services.presenters import material_dict, topic_summary
from app.services.progress import get_viewed_material_ids


def _pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": int(total),
        "total_pages": math.ceil(int(total) / limit) if limit else 0,
    }


def _visible(stmt, user: User):
    if user.is_staff:
        return stmt
    return stmt.where(Material.status == ContentStatus.Published)


def list_lessons(db: Session, *, user: User, page: int, limit: int, lang: str | None) -> dict:
    stmt = _visible(select(Material), user)
    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(stmt.order_by(Material.created_at.desc()).offset((page - 1) * limit).limit(limit)).all()
    viewed = set(get_viewed_material_ids(db, user_id=user.id))
    return {
        "lessons": [material_dict(m, lang, viewed=viewed) for m in rows],
        "pagination": _pagination(page, limit, total),
    }


def get_lesson(db: Session, *, material_id: uuid.UUID, user: User, lang: str | None) -> dict:
    material = db.scalar(select(Material).where(Material.id == material_id))
    if material is None:
        raise not_found("Material not found")
    if material.status != ContentStatus.Published and not user.is_staff:
        raise forbidden("Material is not published")

    db.execute(update(Material).where(Material.id == material.id).values(views=Material.views + 1))
    db.commit()
    db.refresh(material)

    topic = db.get(Topic, material.topic_id)
    out = material_dict(material, lang, viewed=set(get_viewed_material_ids(db, user_id=user.id)))
    out["topic"] = topic_summary(topic, lang) if topic is not None else None
    return out


def list_topic_lessons(
    db: Session,
    *,
    topic_id: uuid.UUID,
    user: User,
    page: int,
    limit: int,
    lang: str | None,
) -> dict:
    topic = db.get(Topic, topic_id)
    if topic is None or (topic.status != ContentStatus.Published and not user.is_staff):
        raise not_found("Topic not found")

    stmt = _visible(select(Material).where(Material.topic_id == topic_id), user)
    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(stmt.order_by(Material.created_at.asc()).offset((page - 1) * limit).limit(limit)).all()
    viewed = set(get_viewed_material_ids(db, user_id=user.id))
    return {
        "topic": topic_summary(topic, lang),
        "lessons": [material_dict(m, lang, viewed=viewed) for m in rows],
        "pagination": _pagination(page, limit, total),
    }
