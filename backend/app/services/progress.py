from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import not_found
from app.db.base import Base, as_naive_utc, utcnow
from app.models.material import Material
from app.models.progress import MaterialView, UserActivity
from app.models.topic import Topic
from app.models.user import User


ACTIVITY_COUNTERS = ("time_spent", "quiz_attempts", "materials_viewed", "goals_completed")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _insert_guarded(db: Session, row: Base) -> bool:
    """Inserts inside a savepoint. Returns False when a unique key already holds the row."""
    # pending rows flush outside the savepoint
    db.flush()
    try:
        with db.begin_nested():
            db.add(row)
    except IntegrityError:
        return False
    return True


def _upsert(db: Session, stmt, row: Base) -> bool:
    """Runs the update, inserting `row` when it matched nothing. Returns True when inserted."""
    if db.execute(stmt).rowcount:
        return False
    if _insert_guarded(db, row):
        return True
    # lost the race to a concurrent insert
    db.execute(stmt)
    return False


def _activity_row(db: Session, *, user_id: uuid.UUID, day: date) -> UserActivity:
    return db.scalars(
        select(UserActivity)
        .where(UserActivity.user_id == user_id, UserActivity.date == day)
        .execution_options(populate_existing=True)
    ).one()


def _touch_user(db: Session, user_id: uuid.UUID) -> None:
    db.execute(
        update(User)
        .where(User.id == user_id)
        .values(last_active_at=utcnow())
        .execution_options(synchronize_session=False)
    )


def update_daily_activity(
    db: Session,
    *,
    user_id: uuid.UUID,
    time_spent: int = 0,
    quiz_attempts: int = 0,
    materials_viewed: int = 0,
    goals_completed: int = 0,
) -> UserActivity:
    today = utc_today()
    deltas = {
        "time_spent": max(0, int(time_spent)),
        "quiz_attempts": max(0, int(quiz_attempts)),
        "materials_viewed": max(0, int(materials_viewed)),
        "goals_completed": max(0, int(goals_completed)),
    }
    stmt = (
        update(UserActivity)
        .where(UserActivity.user_id == user_id, UserActivity.date == today)
        .values({getattr(UserActivity, col): getattr(UserActivity, col) + n for col, n in deltas.items()})
        .execution_options(synchronize_session=False)
    )
    _upsert(db, stmt, UserActivity(user_id=user_id, date=today, **deltas))
    _touch_user(db, user_id)
    return _activity_row(db, user_id=user_id, day=today)


def mark_material_viewed(db: Session, *, user_id: uuid.UUID, material_id: uuid.UUID, time_spent: int | None = None) -> bool:
    """Upserts the view row. Returns True when this is the user's first view."""
    if db.scalar(select(Material.id).where(Material.id == material_id)) is None:
        raise not_found("Material not found")

    spent = int(time_spent or 0)
    stmt = (
        update(MaterialView)
        .where(MaterialView.user_id == user_id, MaterialView.material_id == material_id)
        .values(viewed_at=utcnow(), time_spent=MaterialView.time_spent + spent)
        .execution_options(synchronize_session=False)
    )
    created = _upsert(db, stmt, MaterialView(user_id=user_id, material_id=material_id, time_spent=spent))

    update_daily_activity(
        db,
        user_id=user_id,
        materials_viewed=1 if created else 0,
        time_spent=spent,
    )
    return created


def get_viewed_material_ids(db: Session, *, user_id: uuid.UUID) -> list[str]:
    rows = db.scalars(select(MaterialView.material_id).where(MaterialView.user_id == user_id)).all()
    return [str(r) for r in rows]


def is_material_viewed(db: Session, *, user_id: uuid.UUID, material_id: uuid.UUID) -> bool:
    row = db.scalar(
        select(MaterialView.id).where(MaterialView.user_id == user_id, MaterialView.material_id == material_id)
    )
    return row is not None


def sync_viewed_materials(db: Session, *, user_id: uuid.UUID, material_ids: Iterable[uuid.UUID]) -> list[str]:
    existing = set(get_viewed_material_ids(db, user_id=user_id))
    wanted = {mid for mid in material_ids if str(mid) not in existing}

    new_ids: list[str] = []
    if wanted:
        # unknown or deleted materials are dropped silently
        valid = db.scalars(select(Material.id).where(Material.id.in_(wanted))).all()
        for mid in valid:
            if _insert_guarded(db, MaterialView(user_id=user_id, material_id=mid, time_spent=0)):
                new_ids.append(str(mid))

    return sorted(existing) + sorted(new_ids)


def _greatest(col, value: int):
    return case((col < value, value), else_=col)


def merge_offline_activity(db: Session, *, user_id: uuid.UUID, entries: Iterable[dict]) -> int:
    """Merges client-side daily counters, keeping the larger value per counter. Returns days touched."""
    merged = 0
    for entry in entries:
        day = entry["date"]
        values = {col: max(0, int(entry.get(col) or 0)) for col in ACTIVITY_COUNTERS}
        stmt = (
            update(UserActivity)
            .where(UserActivity.user_id == user_id, UserActivity.date == day)
            .values({getattr(UserActivity, col): _greatest(getattr(UserActivity, col), n) for col, n in values.items()})
            .execution_options(synchronize_session=False)
        )
        _upsert(db, stmt, UserActivity(user_id=user_id, date=day, **values))
        merged += 1
    return merged


def push_offline_progress(
    db: Session,
    *,
    user_id: uuid.UUID,
    seen_materials: Iterable[uuid.UUID] = (),
    activity: Iterable[dict] = (),
) -> dict:
    viewed = sync_viewed_materials(db, user_id=user_id, material_ids=seen_materials)
    days = merge_offline_activity(db, user_id=user_id, entries=activity)
    return {"material_ids": viewed, "days_merged": days}


def pull_offline_progress(db: Session, *, user_id: uuid.UUID, days: int = 30) -> dict:
    activity = sorted(get_recent_activity(db, user_id=user_id, days=days), key=lambda a: a.date, reverse=True)
    return {
        "seen_materials": get_viewed_material_ids(db, user_id=user_id),
        "activity": [activity_dict(a) for a in activity],
        "streak": calculate_streak(db, user_id=user_id),
    }


def get_recent_activity(db: Session, *, user_id: uuid.UUID, days: int = 7) -> list[UserActivity]:
    start = utc_today() - timedelta(days=int(days))
    return list(
        db.scalars(
            select(UserActivity)
            .where(UserActivity.user_id == user_id, UserActivity.date >= start)
            .order_by(UserActivity.date.asc())
        ).all()
    )


def compute_streak(days_desc: list[date], *, today: date) -> tuple[int, int]:
    """Returns (current, longest) for activity days sorted newest first."""
    if not days_desc:
        return 0, 0

    current = 0
    if (today - days_desc[0]).days <= 1:
        current = 1
        for prev, cur in zip(days_desc, days_desc[1:]):
            if (prev - cur).days != 1:
                break
            current += 1

    longest = 1
    run = 1
    for prev, cur in zip(days_desc, days_desc[1:]):
        run = run + 1 if (prev - cur).days == 1 else 1
        longest = max(longest, run)

    return current, max(longest, current)


def calculate_streak(db: Session, *, user_id: uuid.UUID) -> dict:
    days = list(
        db.scalars(
            select(UserActivity.date).where(UserActivity.user_id == user_id).order_by(UserActivity.date.desc())
        ).all()
    )
    current, longest = compute_streak(days, today=utc_today())
    return {
        "current": current,
        "longest": longest,
        "last_active_date": days[0].isoformat() if days else None,
    }


def activity_dict(row: UserActivity) -> dict:
    return {
        "date": row.date.isoformat(),
        "time_spent": int(row.time_spent or 0),
        "quiz_attempts": int(row.quiz_attempts or 0),
        "materials_viewed": int(row.materials_viewed or 0),
        "goals_completed": int(row.goals_completed or 0),
    }


def get_user_stats(db: Session, *, user_id: uuid.UUID) -> dict:
    streak = calculate_streak(db, user_id=user_id)
    recent = get_recent_activity(db, user_id=user_id, days=7)
    total_viewed = db.scalar(select(func.count(MaterialView.id)).where(MaterialView.user_id == user_id)) or 0

    return {
        "streak": streak["current"],
        "longest_streak": streak["longest"],
        "last_active_date": streak["last_active_date"],
        "total_time_spent": sum(int(a.time_spent or 0) for a in recent),
        "total_quiz_attempts": sum(int(a.quiz_attempts or 0) for a in recent),
        "total_materials_viewed": int(total_viewed),
        "last_7_days_activity": [activity_dict(a) for a in recent],
    }


def recent_topics(db: Session, *, user_id: uuid.UUID, limit: int = 2) -> list[dict]:
    views = db.execute(
        select(MaterialView.material_id, MaterialView.viewed_at, Material.topic_id)
        .join(Material, Material.id == MaterialView.material_id)
        .where(MaterialView.user_id == user_id)
        .order_by(MaterialView.viewed_at.desc())
        .limit(50)
    ).all()

    last_viewed: dict[uuid.UUID, datetime] = {}
    for _, viewed_at, topic_id in views:
        if topic_id not in last_viewed:
            last_viewed[topic_id] = viewed_at
        if len(last_viewed) >= limit:
            break
    if not last_viewed:
        return []

    viewed_ids = set(get_viewed_material_ids(db, user_id=user_id))
    topics = db.scalars(select(Topic).where(Topic.id.in_(list(last_viewed.keys())))).all()

    out = []
    for topic in topics:
        material_ids = db.scalars(select(Material.id).where(Material.topic_id == topic.id)).all()
        total = len(material_ids)
        seen = sum(1 for mid in material_ids if str(mid) in viewed_ids)
        out.append(
            {
                "id": str(topic.id),
                "name": topic.name,
                "name_json": topic.name_json,
                "slug": topic.slug,
                "progress": round(seen / total * 100) if total else 0,
                "total_materials": total,
                "viewed_materials": seen,
                "last_viewed_at": as_naive_utc(last_viewed[topic.id]),
            }
        )
    out.sort(key=lambda t: t["last_viewed_at"], reverse=True)
    return out
