from __future__ import annotations

import math
import re
import uuid
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from app.core.errors import ErrorCode, bad_request, conflict, not_found
from app.db.base import utcnow
from app.models.attempt import Answer, QuizAttempt
from app.models.material import Material
from app.models.progress import MaterialView
from app.models.quiz import Option, Question, Quiz
from app.models.topic import ContentStatus, Topic, TopicCategory
from app.models.user import User
from app.services.i18n import clean_cache
from app.services.presenters import material_dict, quiz_summary, topic_summary
from app.services.progress import get_viewed_material_ids


SLUG_RE = re.compile(r"^[a-z0-9-]+$")


def validate_slug(slug: str) -> str:
    value = str(slug or "").strip()
    if not SLUG_RE.match(value):
        raise bad_request("Slug may contain only lowercase letters, digits and hyphens", code=ErrorCode.VALIDATION_ERROR)
    return value


class TopicService:
    def __init__(self, db: Session):
        self.db = db

    # read side

    def _visible(self, stmt, model, *, staff: bool):
        if staff:
            return stmt
        return stmt.where(model.status == ContentStatus.Published)

    def _materials_by_topic(self, topic_ids: list[uuid.UUID], *, staff: bool) -> dict[uuid.UUID, list[Material]]:
        out: dict[uuid.UUID, list[Material]] = {tid: [] for tid in topic_ids}
        if not topic_ids:
            return out
        stmt = select(Material).where(Material.topic_id.in_(topic_ids)).order_by(Material.created_at.asc())
        for m in self.db.scalars(self._visible(stmt, Material, staff=staff)).all():
            out[m.topic_id].append(m)
        return out

    def _quizzes_by_topic(self, topic_ids: list[uuid.UUID], *, staff: bool) -> dict[uuid.UUID, list[Quiz]]:
        out: dict[uuid.UUID, list[Quiz]] = {tid: [] for tid in topic_ids}
        if not topic_ids:
            return out
        stmt = select(Quiz).where(Quiz.topic_id.in_(topic_ids)).order_by(Quiz.created_at.asc())
        for q in self.db.scalars(self._visible(stmt, Quiz, staff=staff)).all():
            out[q.topic_id].append(q)
        return out

    def list_topics(
        self,
        *,
        user: User | None,
        page: int,
        limit: int,
        lang: str | None,
        category: TopicCategory | None = None,
        search: str | None = None,
    ) -> dict[str, Any]:
        staff = user is not None and user.is_staff

        stmt = select(Topic).where(Topic.parent_id.is_(None))
        stmt = self._visible(stmt, Topic, staff=staff)
        if category is not None:
            stmt = stmt.where(Topic.category == category)
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(Topic.name.ilike(pattern), Topic.description.ilike(pattern)))

        total = self.db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        roots = self.db.scalars(stmt.order_by(Topic.name.asc()).offset((page - 1) * limit).limit(limit)).all()

        root_ids = [t.id for t in roots]
        children_stmt = select(Topic).where(Topic.parent_id.in_(root_ids)).order_by(Topic.name.asc())
        children = self.db.scalars(self._visible(children_stmt, Topic, staff=staff)).all() if root_ids else []

        all_ids = root_ids + [c.id for c in children]
        materials = self._materials_by_topic(all_ids, staff=staff)
        quizzes = self._quizzes_by_topic(all_ids, staff=staff)
        viewed = set(get_viewed_material_ids(self.db, user_id=user.id)) if user is not None else None

        def _node(topic: Topic) -> dict:
            out = topic_summary(topic, lang)
            out["materials"] = [material_dict(m, lang, viewed=viewed) for m in materials[topic.id]]
            out["quizzes"] = [quiz_summary(q, lang) for q in quizzes[topic.id]]
            return out

        items = []
        for root in roots:
            node = _node(root)
            node["children"] = [_node(c) for c in children if c.parent_id == root.id]
            node["total_materials"] = len(node["materials"]) + sum(len(c["materials"]) for c in node["children"])
            items.append(node)

        return {
            "topics": items,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": int(total),
                "total_pages": math.ceil(int(total) / limit) if limit else 0,
            },
        }

    def get_topic_by_slug(self, slug: str, *, user: User | None, lang: str | None) -> dict[str, Any]:
        staff = user is not None and user.is_staff
        topic = self.db.scalar(select(Topic).where(Topic.slug == slug))
        if topic is None or (not staff and topic.status != ContentStatus.Published):
            raise not_found("Topic not found")

        parent = self.db.get(Topic, topic.parent_id) if topic.parent_id else None
        children_stmt = select(Topic).where(Topic.parent_id == topic.id).order_by(Topic.name.asc())
        children = self.db.scalars(self._visible(children_stmt, Topic, staff=staff)).all()

        child_ids = [c.id for c in children]
        child_materials = self._materials_by_topic(child_ids, staff=staff)
        child_quizzes = self._quizzes_by_topic(child_ids, staff=staff)
        materials = self._materials_by_topic([topic.id], staff=staff)[topic.id]
        quizzes = self._quizzes_by_topic([topic.id], staff=staff)[topic.id]
        viewed = set(get_viewed_material_ids(self.db, user_id=user.id)) if user is not None else None

        out = topic_summary(topic, lang)
        out["parent"] = topic_summary(parent, lang) if parent is not None else None
        out["children"] = [
            {
                **topic_summary(c, lang),
                "material_count": len(child_materials[c.id]),
                "quiz_count": len(child_quizzes[c.id]),
            }
            for c in children
        ]
        out["materials"] = [material_dict(m, lang, viewed=viewed) for m in materials]
        out["quizzes"] = [quiz_summary(q, lang) for q in quizzes]
        return out

    def topic_tree(self) -> list[dict]:
        topics = self.db.scalars(select(Topic).order_by(Topic.name.asc())).all()
        material_counts = dict(
            self.db.execute(select(Material.topic_id, func.count(Material.id)).group_by(Material.topic_id)).all()
        )
        quiz_counts = dict(self.db.execute(select(Quiz.topic_id, func.count(Quiz.id)).group_by(Quiz.topic_id)).all())

        nodes = {}
        for t in topics:
            node = topic_summary(t, None)
            node["material_count"] = int(material_counts.get(t.id, 0))
            node["quiz_count"] = int(quiz_counts.get(t.id, 0))
            node["children"] = []
            nodes[t.id] = node

        roots = []
        for t in topics:
            if t.parent_id is not None and t.parent_id in nodes:
                nodes[t.parent_id]["children"].append(nodes[t.id])
            else:
                roots.append(nodes[t.id])
        return roots

    # write side

    def _get(self, topic_id: uuid.UUID) -> Topic:
        topic = self.db.get(Topic, topic_id)
        if topic is None:
            raise not_found("Topic not found")
        return topic

    def _ensure_slug_free(self, slug: str, *, exclude_id: uuid.UUID | None = None) -> None:
        stmt = select(Topic.id).where(Topic.slug == slug)
        if exclude_id is not None:
            stmt = stmt.where(Topic.id != exclude_id)
        if self.db.scalar(stmt) is not None:
            raise conflict("Topic with this slug already exists")

    def create_topic(self, data: dict[str, Any]) -> Topic:
        slug = validate_slug(data["slug"])
        self._ensure_slug_free(slug)

        parent_id = data.get("parent_id")
        if parent_id is not None:
            self._get(parent_id)

        status = data.get("status") or ContentStatus.Draft
        topic = Topic(
            name=data["name"],
            name_json=clean_cache(data.get("name_json")),
            slug=slug,
            description=data.get("description") or "",
            desc_json=clean_cache(data.get("desc_json")),
            category=data.get("category") or TopicCategory.Programming,
            status=status,
            parent_id=parent_id,
            published_at=utcnow() if status == ContentStatus.Published else None,
        )
        self.db.add(topic)
        self.db.flush()
        return topic

    def _is_descendant(self, topic_id: uuid.UUID, *, of: uuid.UUID) -> bool:
        seen: set[uuid.UUID] = set()
        current: uuid.UUID | None = topic_id
        while current is not None and current not in seen:
            if current == of:
                return True
            seen.add(current)
            current = self.db.scalar(
                select(Topic.parent_id).where(Topic.id == current).execution_options(include_deleted=True)
            )
        return False

    def update_topic(self, topic_id: uuid.UUID, data: dict[str, Any]) -> Topic:
        topic = self._get(topic_id)

        if "slug" in data and data["slug"] is not None and data["slug"] != topic.slug:
            slug = validate_slug(data["slug"])
            self._ensure_slug_free(slug, exclude_id=topic.id)
            topic.slug = slug

        if "parent_id" in data:
            parent_id = data["parent_id"]
            if parent_id == topic.id:
                raise bad_request("Topic cannot be its own parent", code=ErrorCode.VALIDATION_ERROR)
            if parent_id is not None:
                self._get(parent_id)
                if self._is_descendant(parent_id, of=topic.id):
                    raise bad_request("Topic cannot be moved under its own descendant", code=ErrorCode.VALIDATION_ERROR)
            topic.parent_id = parent_id

        for field in ("name", "description", "category"):
            if data.get(field) is not None:
                setattr(topic, field, data[field])
        for field in ("name_json", "desc_json"):
            if field in data:
                setattr(topic, field, clean_cache(data[field]))

        status = data.get("status")
        if status is not None and status != topic.status:
            topic.status = status
            topic.published_at = utcnow() if status == ContentStatus.Published else None

        return topic

    def delete_topic(self, topic_id: uuid.UUID) -> Topic:
        topic = self._get(topic_id)
        db = self.db

        quiz_ids = db.scalars(
            select(Quiz.id).where(Quiz.topic_id == topic.id).execution_options(include_deleted=True)
        ).all()
        material_ids = db.scalars(
            select(Material.id).where(Material.topic_id == topic.id).execution_options(include_deleted=True)
        ).all()
        question_ids = db.scalars(select(Question.id).where(Question.quiz_id.in_(quiz_ids))).all() if quiz_ids else []

        if question_ids:
            db.execute(delete(Answer).where(Answer.question_id.in_(question_ids)))
            db.execute(delete(Option).where(Option.question_id.in_(question_ids)))
            db.execute(delete(Question).where(Question.id.in_(question_ids)))
        if quiz_ids:
            db.execute(delete(QuizAttempt).where(QuizAttempt.quiz_id.in_(quiz_ids)))
            db.execute(delete(Quiz).where(Quiz.id.in_(quiz_ids)))
        if material_ids:
            db.execute(delete(MaterialView).where(MaterialView.material_id.in_(material_ids)))
            db.execute(delete(Material).where(Material.id.in_(material_ids)))

        db.execute(update(Topic).where(Topic.parent_id == topic.id).values(parent_id=None))
        db.delete(topic)
        return topic
