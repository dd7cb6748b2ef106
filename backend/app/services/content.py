from __future__ import annotations

import uuid
from collections import defaultdict
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, selectinload

from app.core.errors import ErrorCode, bad_request, not_found
from app.db.base import utcnow
from app.models.attempt import Answer
from app.models.material import Lang, Material, MaterialType
from app.models.quiz import Difficulty, Option, Question, Quiz
from app.models.topic import ContentStatus, Topic
from app.services.i18n import clean_cache
from app.services.presenters import material_dict, question_dict, quiz_summary, topic_summary


MIN_OPTIONS = 2
MAX_OPTIONS = 6
EXPORT_MAX_DEPTH = 5


def validate_options(options: list[dict[str, Any]]) -> None:
    if not (MIN_OPTIONS <= len(options) <= MAX_OPTIONS):
        raise bad_request(
            f"A question needs between {MIN_OPTIONS} and {MAX_OPTIONS} options",
            code=ErrorCode.VALIDATION_ERROR,
        )
    if not any(bool(o.get("correct")) for o in options):
        raise bad_request("At least one option must be correct", code=ErrorCode.VALIDATION_ERROR)


def _apply_status(obj, status: ContentStatus | None) -> None:
    if status is None or status == obj.status:
        return
    obj.status = status
    obj.published_at = utcnow() if status == ContentStatus.Published else None


def localized_material_update(dto: dict[str, Any]) -> dict[str, Any]:
    """Turns the per-language editor form into material columns.

    EN values become the base fields; each `*_json` cache keeps only the
    languages that were filled in.
    """
    out: dict[str, Any] = {}
    if dto.get("type"):
        out["type"] = dto["type"]

    for prefix, base, cache in (("title", "title", "title_json"), ("link", "url", "url_json"), ("content", "content", "content_json")):
        values = {lang: dto.get(f"{prefix}_{lang.lower()}") for lang in ("EN", "UA", "PL")}
        if not any(v is not None for v in values.values()):
            continue
        if values["EN"]:
            out[base] = values["EN"]
        out[cache] = clean_cache(values)
    return out


class ContentService:
    def __init__(self, db: Session):
        self.db = db

    def get_topic(self, topic_id: uuid.UUID) -> Topic:
        topic = self.db.get(Topic, topic_id)
        if topic is None:
            raise not_found("Topic not found")
        return topic

    # materials

    def list_root_topics(self) -> list[Topic]:
        return list(self.db.scalars(select(Topic).where(Topic.parent_id.is_(None)).order_by(Topic.name.asc())).all())

    def list_materials(self, topic_id: uuid.UUID) -> list[Material]:
        self.get_topic(topic_id)
        return list(
            self.db.scalars(
                select(Material).where(Material.topic_id == topic_id).order_by(Material.updated_at.desc())
            ).all()
        )

    def get_material(self, material_id: uuid.UUID, *, topic_id: uuid.UUID | None = None) -> Material:
        stmt = select(Material).where(Material.id == material_id)
        if topic_id is not None:
            stmt = stmt.where(Material.topic_id == topic_id)
        material = self.db.scalar(stmt)
        if material is None:
            raise not_found("Material not found")
        return material

    @staticmethod
    def _check_material_shape(type_: MaterialType, url: str | None, content: str | None) -> None:
        if type_ in (MaterialType.link, MaterialType.video) and not (url or "").strip():
            raise bad_request(f"A {type_.value} material requires a url", code=ErrorCode.VALIDATION_ERROR)
        if type_ == MaterialType.text and not (content or "").strip():
            raise bad_request("A text material requires content", code=ErrorCode.VALIDATION_ERROR)

    def create_material(self, topic_id: uuid.UUID, data: dict[str, Any]) -> Material:
        self.get_topic(topic_id)
        type_ = MaterialType(data["type"])
        self._check_material_shape(type_, data.get("url"), data.get("content"))

        status = data.get("status")
        if status is None:
            status = ContentStatus.Published if data.get("publish") else ContentStatus.Draft

        material = Material(
            topic_id=topic_id,
            title=data["title"],
            title_json=clean_cache(data.get("title_json")),
            type=type_,
            url=data.get("url") or None,
            url_json=clean_cache(data.get("url_json")),
            content=data.get("content"),
            content_json=clean_cache(data.get("content_json")),
            lang=data.get("lang") or Lang.EN,
            status=status,
            published_at=utcnow() if status == ContentStatus.Published else None,
            file_id=data.get("file_id"),
            views=0,
        )
        self.db.add(material)
        self.db.flush()
        return material

    def update_material(self, material_id: uuid.UUID, data: dict[str, Any]) -> Material:
        material = self.get_material(material_id)

        changes = {k: v for k, v in data.items() if k in {"title", "type", "url", "content", "lang", "file_id"}}
        for cache in ("title_json", "url_json", "content_json"):
            if cache in data:
                changes[cache] = clean_cache(data[cache])
        changes.update(localized_material_update(data))

        for field, value in changes.items():
            if field in {"title", "type", "lang"} and value is None:
                continue
            setattr(material, field, value)

        self._check_material_shape(material.type, material.url, material.content)
        _apply_status(material, data.get("status"))
        return material

    def set_material_published(self, material_id: uuid.UUID, published: bool) -> Material:
        material = self.get_material(material_id)
        _apply_status(material, ContentStatus.Published if published else ContentStatus.Draft)
        return material

    def soft_delete_material(self, topic_id: uuid.UUID, material_id: uuid.UUID) -> Material:
        material = self.get_material(material_id, topic_id=topic_id)
        material.soft_delete()
        return material

    # quizzes

    def list_quizzes(self, topic_id: uuid.UUID) -> list[tuple[Quiz, int]]:
        self.get_topic(topic_id)
        quizzes = self.db.scalars(select(Quiz).where(Quiz.topic_id == topic_id).order_by(Quiz.created_at.asc())).all()
        counts = dict(
            self.db.execute(
                select(Question.quiz_id, func.count(Question.id))
                .where(Question.quiz_id.in_([q.id for q in quizzes]))
                .group_by(Question.quiz_id)
            ).all()
        ) if quizzes else {}
        return [(q, int(counts.get(q.id, 0))) for q in quizzes]

    def get_quiz(self, quiz_id: uuid.UUID, *, topic_id: uuid.UUID | None = None) -> Quiz:
        stmt = select(Quiz).where(Quiz.id == quiz_id)
        if topic_id is not None:
            stmt = stmt.where(Quiz.topic_id == topic_id)
        quiz = self.db.scalar(stmt)
        if quiz is None:
            raise not_found("Quiz not found")
        return quiz

    def create_quiz(self, topic_id: uuid.UUID, data: dict[str, Any]) -> Quiz:
        self.get_topic(topic_id)
        status = data.get("status") or ContentStatus.Draft
        quiz = Quiz(
            topic_id=topic_id,
            title=data["title"],
            title_json=clean_cache(data.get("title_json")),
            duration_sec=int(data.get("duration_sec") or 120),
            status=status,
            published_at=utcnow() if status == ContentStatus.Published else None,
        )
        self.db.add(quiz)
        self.db.flush()
        return quiz

    def update_quiz(self, topic_id: uuid.UUID, quiz_id: uuid.UUID, data: dict[str, Any]) -> Quiz:
        quiz = self.get_quiz(quiz_id, topic_id=topic_id)
        if data.get("title") is not None:
            quiz.title = data["title"]
        if "title_json" in data:
            quiz.title_json = clean_cache(data["title_json"])
        if data.get("duration_sec") is not None:
            quiz.duration_sec = int(data["duration_sec"])
        _apply_status(quiz, data.get("status"))
        return quiz

    def soft_delete_quiz(self, topic_id: uuid.UUID, quiz_id: uuid.UUID) -> Quiz:
        quiz = self.get_quiz(quiz_id, topic_id=topic_id)
        quiz.soft_delete()
        return quiz

    # questions

    def list_questions(self, quiz_id: uuid.UUID) -> list[Question]:
        self.get_quiz(quiz_id)
        return list(
            self.db.scalars(
                select(Question)
                .where(Question.quiz_id == quiz_id)
                .order_by(Question.created_at.asc())
                .options(selectinload(Question.options))
            ).all()
        )

    def get_question(self, quiz_id: uuid.UUID, question_id: uuid.UUID) -> Question:
        question = self.db.scalar(
            select(Question)
            .where(Question.id == question_id, Question.quiz_id == quiz_id)
            .options(selectinload(Question.options))
        )
        if question is None:
            raise not_found("Question not found")
        return question

    def _add_options(self, question: Question, options: list[dict[str, Any]]) -> None:
        for position, o in enumerate(options):
            self.db.add(
                Option(
                    question_id=question.id,
                    text=o["text"],
                    text_json=clean_cache(o.get("text_json")),
                    correct=bool(o.get("correct")),
                    position=position,
                )
            )

    def create_question(self, quiz_id: uuid.UUID, data: dict[str, Any]) -> Question:
        self.get_quiz(quiz_id)
        options = list(data.get("options") or [])
        validate_options(options)

        question = Question(
            quiz_id=quiz_id,
            text=data["text"],
            text_json=clean_cache(data.get("text_json")),
            explanation=data.get("explanation"),
            explanation_json=clean_cache(data.get("explanation_json")),
            difficulty=data.get("difficulty") or Difficulty.Easy,
            tags=list(data.get("tags") or []),
        )
        self.db.add(question)
        self.db.flush()
        self._add_options(question, options)
        self.db.flush()
        self.db.refresh(question)
        return question

    def update_question(self, quiz_id: uuid.UUID, question_id: uuid.UUID, data: dict[str, Any]) -> Question:
        question = self.get_question(quiz_id, question_id)

        if data.get("text") is not None:
            question.text = data["text"]
        if "text_json" in data:
            question.text_json = clean_cache(data["text_json"])
        if "explanation" in data:
            question.explanation = data["explanation"]
        if "explanation_json" in data:
            question.explanation_json = clean_cache(data["explanation_json"])
        if data.get("difficulty") is not None:
            question.difficulty = data["difficulty"]
        if data.get("tags") is not None:
            question.tags = list(data["tags"])

        options = data.get("options")
        if options is not None:
            options = list(options)
            validate_options(options)
            # recorded answers point at the old options
            self.db.execute(delete(Answer).where(Answer.question_id == question.id))
            self.db.execute(delete(Option).where(Option.question_id == question.id))
            self._add_options(question, options)

        self.db.flush()
        self.db.refresh(question)
        return question

    def delete_question(self, quiz_id: uuid.UUID, question_id: uuid.UUID) -> Question:
        question = self.get_question(quiz_id, question_id)
        self.db.execute(delete(Answer).where(Answer.question_id == question.id))
        self.db.execute(delete(Option).where(Option.question_id == question.id))
        self.db.execute(delete(Question).where(Question.id == question.id))
        return question

    # options

    def get_option(self, option_id: uuid.UUID) -> Option:
        option = self.db.get(Option, option_id)
        if option is None:
            raise not_found("Option not found")
        return option

    def _other_options(self, option: Option) -> list[Option]:
        return list(
            self.db.scalars(
                select(Option).where(Option.question_id == option.question_id, Option.id != option.id)
            ).all()
        )

    def update_option(self, option_id: uuid.UUID, data: dict[str, Any]) -> Option:
        option = self.get_option(option_id)
        if data.get("correct") is False and option.correct:
            if not any(o.correct for o in self._other_options(option)):
                raise bad_request("At least one option must be correct", code=ErrorCode.VALIDATION_ERROR)

        if data.get("text") is not None:
            option.text = data["text"]
        if "text_json" in data:
            option.text_json = clean_cache(data["text_json"])
        if data.get("correct") is not None:
            option.correct = bool(data["correct"])
        return option

    def delete_option(self, option_id: uuid.UUID) -> Option:
        option = self.get_option(option_id)
        validate_options([{"correct": o.correct} for o in self._other_options(option)])
        self.db.execute(delete(Answer).where(Answer.option_id == option.id))
        self.db.execute(delete(Option).where(Option.id == option.id))
        return option

    # export

    def export_tree(self, *, max_depth: int = EXPORT_MAX_DEPTH) -> list[dict]:
        """Dumps every live topic with its materials and quizzes, nested under its parent."""
        topics = self.db.scalars(select(Topic).order_by(Topic.created_at.asc())).all()
        materials = self.db.scalars(select(Material).order_by(Material.created_at.asc())).all()
        quizzes = self.db.scalars(
            select(Quiz)
            .order_by(Quiz.created_at.asc())
            .options(selectinload(Quiz.questions).selectinload(Question.options))
        ).all()

        children: dict[uuid.UUID | None, list[Topic]] = defaultdict(list)
        for topic in topics:
            children[topic.parent_id].append(topic)
        by_topic_materials: dict[uuid.UUID, list[Material]] = defaultdict(list)
        for material in materials:
            by_topic_materials[material.topic_id].append(material)
        by_topic_quizzes: dict[uuid.UUID, list[Quiz]] = defaultdict(list)
        for quiz in quizzes:
            by_topic_quizzes[quiz.topic_id].append(quiz)

        def node(topic: Topic, depth: int) -> dict:
            out = topic_summary(topic, None)
            out["materials"] = [material_dict(m, None) for m in by_topic_materials[topic.id]]
            out["quizzes"] = [
                {**quiz_summary(q, None), "questions": [question_dict(x) for x in q.questions]}
                for q in by_topic_quizzes[topic.id]
            ]
            if depth < max_depth:
                out["children"] = [node(c, depth + 1) for c in children[topic.id]]
            return out

        return [node(t, 0) for t in children[None]]
