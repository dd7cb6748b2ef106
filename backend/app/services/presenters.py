from __future__ import annotations

from app.models.material import Material
from app.models.quiz import Option, Question, Quiz
from app.models.topic import Topic
from app.services.i18n import get_translation


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def topic_summary(topic: Topic, lang: str | None) -> dict:
    return {
        "id": str(topic.id),
        "slug": topic.slug,
        "name": get_translation(topic.name_json, lang, topic.name) if lang else topic.name,
        "name_json": topic.name_json,
        "description": get_translation(topic.desc_json, lang, topic.description) if lang else topic.description,
        "desc_json": topic.desc_json,
        "category": topic.category.value,
        "status": topic.status.value,
        "parent_id": str(topic.parent_id) if topic.parent_id else None,
        "published_at": _iso(topic.published_at),
    }


def material_dict(material: Material, lang: str | None, *, viewed: set[str] | None = None) -> dict:
    out = {
        "id": str(material.id),
        "topic_id": str(material.topic_id),
        "title": get_translation(material.title_json, lang, material.title) if lang else material.title,
        "title_json": material.title_json,
        "type": material.type.value,
        "url": get_translation(material.url_json, lang, material.url) if lang else material.url,
        "url_json": material.url_json,
        "content": get_translation(material.content_json, lang, material.content) if lang else material.content,
        "content_json": material.content_json,
        "lang": material.lang.value,
        "status": material.status.value,
        "published_at": _iso(material.published_at),
        "views": int(material.views or 0),
        "file_id": str(material.file_id) if material.file_id else None,
        "created_at": _iso(material.created_at),
        "updated_at": _iso(material.updated_at),
    }
    if viewed is not None:
        out["is_seen"] = str(material.id) in viewed
    return out


def quiz_summary(quiz: Quiz, lang: str | None, *, question_count: int | None = None) -> dict:
    out = {
        "id": str(quiz.id),
        "topic_id": str(quiz.topic_id),
        "title": get_translation(quiz.title_json, lang, quiz.title) if lang else quiz.title,
        "title_json": quiz.title_json,
        "duration_sec": quiz.duration_sec,
        "status": quiz.status.value,
        "published_at": _iso(quiz.published_at),
    }
    if question_count is not None:
        out["question_count"] = question_count
    return out


def option_dict(option: Option) -> dict:
    return {
        "id": str(option.id),
        "text": option.text,
        "text_json": option.text_json,
        "correct": bool(option.correct),
    }


def question_dict(question: Question) -> dict:
    """Editor view; includes correct flags."""
    return {
        "id": str(question.id),
        "quiz_id": str(question.quiz_id),
        "text": question.text,
        "text_json": question.text_json,
        "explanation": question.explanation,
        "explanation_json": question.explanation_json,
        "difficulty": question.difficulty.value,
        "tags": list(question.tags or []),
        "options": [option_dict(o) for o in question.options],
    }
