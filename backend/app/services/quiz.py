"""Quiz attempts: issuing time-boxed tokens, scoring and history.

A student fetches a quiz and receives a signed token holding the quiz id, the
user id and the moment the attempt runs out (`expires_at`, epoch millis). The
submit call verifies the token, enforces the deadline and scores the answers
against the stored `correct` flags.
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from dataclasses import dataclass

from jose import JWTError, jwt
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.core.errors import ErrorCode, api_error, not_found
from app.models.attempt import Answer, QuizAttempt
from app.models.quiz import Question, Quiz
from app.models.topic import ContentStatus
from app.models.user import User
from app.services import gamification, progress
from app.services.i18n import get_translation


log = logging.getLogger(__name__)

XP_PER_CORRECT_ANSWER = 10
# the JWT itself outlives the attempt so a late submit reports "time exceeded", not "invalid"
TOKEN_EXP_MARGIN_SECONDS = 60 * 60


@dataclass(frozen=True)
class SubmittedAnswer:
    question_id: uuid.UUID
    option_id: uuid.UUID | None


def _now_ms() -> int:
    return int(time.time() * 1000)


def issue_quiz_token(*, quiz_id: uuid.UUID, user_id: uuid.UUID, duration_sec: int, now_ms: int | None = None) -> str:
    issued = int(now_ms if now_ms is not None else _now_ms())
    expires_at = issued + int(duration_sec) * 1000 + int(settings.quiz_token_grace_seconds) * 1000
    payload = {
        "type": "quiz",
        "quiz_id": str(quiz_id),
        "user_id": str(user_id),
        "iat": issued // 1000,
        "expires_at": expires_at,
        "exp": expires_at // 1000 + TOKEN_EXP_MARGIN_SECONDS,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_quiz_token(token: str, *, quiz_id: uuid.UUID, user_id: uuid.UUID, now_ms: int | None = None) -> dict:
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        log.info("quiz token verification failed: %s", e)
        raise api_error(401, ErrorCode.TOKEN_INVALID, "Invalid or expired quiz token") from e
    if payload.get("type") != "quiz":
        raise api_error(401, ErrorCode.TOKEN_INVALID, "Invalid or expired quiz token")

    now = int(now_ms if now_ms is not None else _now_ms())
    if now > int(payload.get("expires_at") or 0):
        raise api_error(403, ErrorCode.QUIZ_TIME_EXCEEDED, "Quiz time limit exceeded")

    if payload.get("quiz_id") != str(quiz_id) or payload.get("user_id") != str(user_id):
        raise api_error(403, ErrorCode.QUIZ_TOKEN_MISMATCH, "Quiz token mismatch")
    return payload


def _load_quiz(db: Session, quiz_id: uuid.UUID) -> Quiz | None:
    return db.scalar(
        select(Quiz)
        .where(Quiz.id == quiz_id)
        .options(selectinload(Quiz.questions).selectinload(Question.options))
    )


def get_quiz_for_attempt(db: Session, *, quiz_id: uuid.UUID, user: User, lang: str | None) -> dict:
    quiz = _load_quiz(db, quiz_id)
    if quiz is None or (quiz.status != ContentStatus.Published and not user.is_staff):
        raise not_found("Quiz not found")

    token = issue_quiz_token(quiz_id=quiz.id, user_id=user.id, duration_sec=quiz.duration_sec)

    return {
        "id": str(quiz.id),
        "title": get_translation(quiz.title_json, lang, quiz.title) if lang else quiz.title,
        "duration_sec": quiz.duration_sec,
        "topic_id": str(quiz.topic_id),
        "status": quiz.status.value,
        "token": token,
        "questions": [
            {
                "id": str(q.id),
                "text": get_translation(q.text_json, lang, q.text) if lang else q.text,
                "explanation": get_translation(q.explanation_json, lang, q.explanation) if lang else q.explanation,
                "difficulty": q.difficulty.value,
                "tags": list(q.tags or []),
                # correct flags stay server-side
                "options": [
                    {"id": str(o.id), "text": get_translation(o.text_json, lang, o.text) if lang else o.text}
                    for o in q.options
                ],
            }
            for q in quiz.questions
        ],
    }


def submit_attempt(
    db: Session,
    *,
    quiz_id: uuid.UUID,
    user: User,
    token: str,
    answers: list[SubmittedAnswer],
    lang: str | None,
) -> dict:
    log.info("quiz submit: user=%s quiz=%s", user.id, quiz_id)
    verify_quiz_token(token, quiz_id=quiz_id, user_id=user.id)

    quiz = _load_quiz(db, quiz_id)
    if quiz is None:
        raise not_found("Quiz not found")

    correct_map: dict[str, str] = {}
    solutions: dict[str, str] = {}
    option_owner: dict[uuid.UUID, uuid.UUID] = {}
    for q in quiz.questions:
        for o in q.options:
            option_owner[o.id] = q.id
            if o.correct and str(q.id) not in correct_map:
                correct_map[str(q.id)] = str(o.id)
        explanation = get_translation(q.explanation_json, lang, q.explanation) if lang else q.explanation
        if explanation:
            solutions[str(q.id)] = explanation

    # last answer per question wins; blanks and foreign options are ignored
    unique: dict[uuid.UUID, uuid.UUID] = {}
    for a in answers:
        if a.option_id is None:
            continue
        if option_owner.get(a.option_id) != a.question_id:
            continue
        unique[a.question_id] = a.option_id

    total = len(quiz.questions)
    correct = 0
    rows: list[Answer] = []
    for question_id, option_id in unique.items():
        ok = correct_map.get(str(question_id)) == str(option_id)
        if ok:
            correct += 1
        rows.append(Answer(user_id=user.id, question_id=question_id, option_id=option_id, is_correct=ok))

    ratio = correct / total if total else 0.0
    passed = ratio >= float(settings.quiz_pass_threshold)
    xp_earned = correct * XP_PER_CORRECT_ANSWER if passed else 0

    attempt = QuizAttempt(user_id=user.id, quiz_id=quiz.id, score=correct, total=total, xp_earned=xp_earned)
    db.add(attempt)
    db.flush()
    for row in rows:
        row.attempt_id = attempt.id
        db.add(row)

    gamification.award_xp(db, user_id=user.id, xp=xp_earned)
    progress.update_daily_activity(db, user_id=user.id, quiz_attempts=1)
    db.commit()

    log.info(
        "quiz attempt %s recorded: user=%s quiz=%s score=%s/%s passed=%s",
        attempt.id,
        user.id,
        quiz.id,
        correct,
        total,
        passed,
    )

    return {
        "attempt_id": str(attempt.id),
        "correct": correct,
        "total": total,
        "score": math.floor(ratio * 100 + 0.5),
        "passed": passed,
        "xp_earned": xp_earned,
        "correct_map": correct_map,
        "solutions": solutions,
    }


def get_user_history(db: Session, *, user_id: uuid.UUID, page: int, limit: int, lang: str | None) -> dict:
    total = db.scalar(select(func.count(QuizAttempt.id)).where(QuizAttempt.user_id == user_id)) or 0

    # history keeps attempts of quizzes that were soft-deleted since
    rows = db.execute(
        select(QuizAttempt, Quiz)
        .join(Quiz, Quiz.id == QuizAttempt.quiz_id)
        .where(QuizAttempt.user_id == user_id)
        .order_by(QuizAttempt.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .execution_options(include_deleted=True)
    ).all()

    data = [
        {
            "quiz_id": str(quiz.id),
            "quiz_title": get_translation(quiz.title_json, lang, quiz.title) if lang else quiz.title,
            "correct": attempt.score,
            "total": attempt.total,
            "xp_earned": attempt.xp_earned,
            "last_attempt": attempt.created_at.isoformat(),
        }
        for attempt, quiz in rows
    ]
    return {
        "data": data,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": int(total),
            "total_pages": math.ceil(int(total) / limit) if limit else 0,
        },
    }
