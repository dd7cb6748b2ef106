from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.rate_limit import rate_limit
from app.core.security import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.quiz import QuizStartResponse, QuizSubmitRequest, QuizSubmitResponse
from app.services import quiz as quiz_service
from app.services.i18n import lang_query, parse_lang

router = APIRouter(prefix="/quiz", tags=["quiz"])


@router.get("/user/history")
def history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=5, ge=1, le=100),
    lang: str | None = Depends(lang_query),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return quiz_service.get_user_history(db, user_id=user.id, page=page, limit=limit, lang=lang)


@router.get("/{quiz_id}", response_model=QuizStartResponse)
def start_quiz(
    quiz_id: uuid.UUID,
    lang: str | None = Depends(lang_query),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return quiz_service.get_quiz_for_attempt(db, quiz_id=quiz_id, user=user, lang=lang)


@router.post("/{quiz_id}/submit", response_model=QuizSubmitResponse)
def submit_quiz(
    quiz_id: uuid.UUID,
    payload: QuizSubmitRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    _: object = rate_limit(key_prefix="quiz_submit", limit=30, window_seconds=60),
):
    answers = [quiz_service.SubmittedAnswer(question_id=a.question_id, option_id=a.option_id) for a in payload.answers]
    return quiz_service.submit_attempt(
        db,
        quiz_id=quiz_id,
        user=user,
        token=payload.token,
        answers=answers,
        lang=parse_lang(payload.lang),
    )
