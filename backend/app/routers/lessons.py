import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.security import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.services import lessons
from app.services.i18n import lang_query

router = APIRouter(prefix="/lessons", tags=["lessons"])


@router.get("")
def list_lessons(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    lang: str | None = Depends(lang_query),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return lessons.list_lessons(db, user=user, page=page, limit=limit, lang=lang)


@router.get("/by-topic/{topic_id}")
def list_topic_lessons(
    topic_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    lang: str | None = Depends(lang_query),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return lessons.list_topic_lessons(db, topic_id=topic_id, user=user, page=page, limit=limit, lang=lang)


@router.get("/{material_id}")
def get_lesson(
    material_id: uuid.UUID,
    lang: str | None = Depends(lang_query),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return lessons.get_lesson(db, material_id=material_id, user=user, lang=lang)
