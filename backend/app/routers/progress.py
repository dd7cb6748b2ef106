from __future__ import annotations

import time
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.security import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.progress import ActivityRequest, MarkViewedRequest, PushRequest, StreakResponse, SyncViewedRequest
from app.services import progress

router = APIRouter(prefix="/progress", tags=["progress"])


@router.get("/viewed")
def viewed(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"material_ids": progress.get_viewed_material_ids(db, user_id=user.id)}


@router.post("/viewed")
def mark_viewed(payload: MarkViewedRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    created = progress.mark_material_viewed(
        db,
        user_id=user.id,
        material_id=payload.material_id,
        time_spent=payload.time_spent,
    )
    db.commit()
    return {"ok": True, "new": created}


@router.get("/viewed/{material_id}")
def is_viewed(material_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"viewed": progress.is_material_viewed(db, user_id=user.id, material_id=material_id)}


@router.post("/sync")
def sync(payload: SyncViewedRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    ids = progress.sync_viewed_materials(db, user_id=user.id, material_ids=payload.material_ids)
    db.commit()
    return {"material_ids": ids}


@router.get("/stats")
def stats(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return progress.get_user_stats(db, user_id=user.id)


@router.get("/streak", response_model=StreakResponse)
def streak(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return progress.calculate_streak(db, user_id=user.id)


@router.post("/visit")
def visit(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    row = progress.update_daily_activity(db, user_id=user.id, time_spent=1)
    db.commit()
    return progress.activity_dict(row)


@router.get("/activity")
def activity(
    days: int = Query(default=7, ge=1, le=30),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    rows = progress.get_recent_activity(db, user_id=user.id, days=days)
    return {"days": days, "activity": [progress.activity_dict(r) for r in rows]}


@router.post("/activity")
def record_activity(payload: ActivityRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    row = progress.update_daily_activity(
        db,
        user_id=user.id,
        time_spent=int(payload.time_spent or 0),
        quiz_attempts=1 if payload.quiz_attempt else 0,
        goals_completed=1 if payload.goal_completed else 0,
    )
    db.commit()
    return progress.activity_dict(row)


@router.get("/recent-topics")
def recent_topics(
    limit: int = Query(default=2, ge=1, le=10),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {"topics": progress.recent_topics(db, user_id=user.id, limit=limit)}


@router.post("/push")
def push(payload: PushRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    progress.push_offline_progress(
        db,
        user_id=user.id,
        seen_materials=payload.seen_materials,
        activity=[entry.model_dump() for entry in payload.activity],
    )
    db.commit()
    return {"ok": True, "synced": int(time.time() * 1000)}


@router.get("/pull")
def pull(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {**progress.pull_offline_progress(db, user_id=user.id), "synced": int(time.time() * 1000)}
