from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.security import get_optional_user
from app.db.session import get_db
from app.models.topic import TopicCategory
from app.models.user import User
from app.services.i18n import lang_query
from app.services.topics import TopicService

router = APIRouter(prefix="/topics", tags=["topics"])


@router.get("")
def list_topics(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=50),
    category: TopicCategory | None = None,
    search: str | None = Query(default=None, max_length=200),
    lang: str | None = Depends(lang_query),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    return TopicService(db).list_topics(
        user=user,
        page=page,
        limit=limit,
        lang=lang,
        category=category,
        search=search,
    )


@router.get("/{slug}")
def get_topic(
    slug: str,
    lang: str | None = Depends(lang_query),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    return TopicService(db).get_topic_by_slug(slug, user=user, lang=lang)
