import uuid
from datetime import date, timedelta

from sqlalchemy import insert, select

from app.db import session as session_module
from app.models.progress import MaterialView, UserActivity
from app.services import progress as progress_service
from app.services.progress import compute_streak, utc_today

from conftest import create_user, seed_material, seed_topic


D = date(2024, 3, 10)


def _days(*offsets):
    return [D - timedelta(days=o) for o in offsets]


def test_compute_streak_empty():
    assert compute_streak([], today=D) == (0, 0)


def test_compute_streak_counts_consecutive_days():
    assert compute_streak(_days(0, 1, 2), today=D) == (3, 3)
    # yesterday still keeps the streak alive
    assert compute_streak(_days(1, 2), today=D) == (2, 2)


def test_compute_streak_resets_after_gap():
    assert compute_streak(_days(2, 3, 4), today=D) == (0, 3)
    assert compute_streak(_days(0, 1, 5, 6, 7, 8), today=D) == (2, 4)


def test_mark_viewed_reports_first_view(client, student):
    material = seed_material(seed_topic().id)

    r = client.post("/api/progress/viewed", json={"material_id": str(material.id), "time_spent": 30})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "new": True}
    r = client.post("/api/progress/viewed", json={"material_id": str(material.id), "time_spent": 15})
    assert r.json()["new"] is False

    assert client.get("/api/progress/viewed").json()["material_ids"] == [str(material.id)]
    assert client.get(f"/api/progress/viewed/{material.id}").json() == {"viewed": True}

    with session_module.SessionLocal() as db:
        row = db.query(UserActivity).filter(UserActivity.user_id == student.id).one()
        assert row.materials_viewed == 1
        assert row.time_spent == 45


def test_mark_viewed_unknown_material_is_404(client, student):
    r = client.post("/api/progress/viewed", json={"material_id": str(uuid.uuid4())})
    assert r.status_code == 404


def test_sync_merges_and_drops_unknown_ids(client, student):
    topic = seed_topic()
    a = seed_material(topic.id)
    b = seed_material(topic.id)
    client.post("/api/progress/viewed", json={"material_id": str(a.id)})

    r = client.post("/api/progress/sync", json={"material_ids": [str(a.id), str(b.id), str(uuid.uuid4())]})
    assert r.status_code == 200
    assert sorted(r.json()["material_ids"]) == sorted([str(a.id), str(b.id)])


def test_stats_and_streak(client, student):
    material = seed_material(seed_topic().id)
    client.post("/api/progress/viewed", json={"material_id": str(material.id)})

    stats = client.get("/api/progress/stats").json()
    assert stats["streak"] == 1
    assert stats["total_materials_viewed"] == 1
    assert len(stats["last_7_days_activity"]) == 1

    streak = client.get("/api/progress/streak").json()
    assert streak == {"current": 1, "longest": 1, "last_active_date": utc_today().isoformat()}


def test_visit_and_activity(client, student):
    r = client.post("/api/progress/visit")
    assert r.status_code == 200
    assert r.json()["time_spent"] == 1

    r = client.post("/api/progress/activity", json={"time_spent": 120, "quiz_attempt": True, "goal_completed": True})
    body = r.json()
    assert body["time_spent"] == 121
    assert body["quiz_attempts"] == 1
    assert body["goals_completed"] == 1

    r = client.get("/api/progress/activity", params={"days": 3})
    assert r.json()["days"] == 3
    assert len(r.json()["activity"]) == 1
    assert client.get("/api/progress/activity", params={"days": 31}).status_code == 400


def test_recent_topics_reports_progress(client, student):
    topic = seed_topic()
    first = seed_material(topic.id)
    seed_material(topic.id)
    client.post("/api/progress/viewed", json={"material_id": str(first.id)})

    topics = client.get("/api/progress/recent-topics").json()["topics"]
    assert len(topics) == 1
    assert topics[0]["slug"] == topic.slug
    assert topics[0]["progress"] == 50
    assert topics[0]["viewed_materials"] == 1


def test_progress_requires_login(anon_client):
    assert anon_client.get("/api/progress/stats").status_code == 401


def _racing_insert(monkeypatch, competing_stmt):
    """Makes another writer create the row between our update and our insert."""
    real_insert = progress_service._insert_guarded
    pending = [competing_stmt]

    def racing(session, row):
        if pending:
            session.execute(pending.pop())
        return real_insert(session, row)

    monkeypatch.setattr(progress_service, "_insert_guarded", racing)


def test_daily_activity_survives_concurrent_first_insert(monkeypatch, db):
    user = create_user()
    _racing_insert(
        monkeypatch,
        insert(UserActivity).values(
            user_id=user.id, date=utc_today(), time_spent=5, quiz_attempts=0, materials_viewed=0, goals_completed=0
        ),
    )

    row = progress_service.update_daily_activity(db, user_id=user.id, time_spent=10, quiz_attempts=1)
    db.commit()

    assert (row.time_spent, row.quiz_attempts) == (15, 1)
    assert len(db.scalars(select(UserActivity).where(UserActivity.user_id == user.id)).all()) == 1


def test_mark_viewed_survives_concurrent_first_view(monkeypatch, db):
    user = create_user()
    material = seed_material(seed_topic().id)
    _racing_insert(monkeypatch, insert(MaterialView).values(user_id=user.id, material_id=material.id, time_spent=3))

    created = progress_service.mark_material_viewed(db, user_id=user.id, material_id=material.id, time_spent=7)
    db.commit()

    assert created is False
    views = db.scalars(select(MaterialView).where(MaterialView.user_id == user.id)).all()
    assert [v.time_spent for v in views] == [10]


def test_daily_activity_increments_existing_row(db):
    user = create_user()
    progress_service.update_daily_activity(db, user_id=user.id, time_spent=4)
    db.commit()
    row = progress_service.update_daily_activity(db, user_id=user.id, time_spent=6, goals_completed=1)
    db.commit()
    assert (row.time_spent, row.goals_completed) == (10, 1)


def test_push_merges_offline_activity_keeping_larger_values(client, student):
    material = seed_material(seed_topic().id)
    today = utc_today()
    yesterday = today - timedelta(days=1)
    client.post("/api/progress/activity", json={"time_spent": 50, "quiz_attempt": True})

    payload = {
        "seen_materials": [str(material.id), str(uuid.uuid4())],
        "activity": [
            {"date": today.isoformat(), "time_spent": 20, "quiz_attempts": 3, "goals_met": 1},
            {"date": yesterday.isoformat(), "time_spent": 7},
        ],
    }
    r = client.post("/api/progress/push", json=payload)
    assert r.status_code == 200, r.text
    assert r.json()["ok"] is True
    assert isinstance(r.json()["synced"], int)

    # pushing the same snapshot again changes nothing
    assert client.post("/api/progress/push", json=payload).status_code == 200

    pulled = client.get("/api/progress/pull").json()
    assert pulled["seen_materials"] == [str(material.id)]
    assert pulled["activity"] == [
        {"date": today.isoformat(), "time_spent": 50, "quiz_attempts": 3, "materials_viewed": 0, "goals_completed": 1},
        {"date": yesterday.isoformat(), "time_spent": 7, "quiz_attempts": 0, "materials_viewed": 0, "goals_completed": 0},
    ]
    assert pulled["streak"]["current"] == 2
    assert pulled["streak"]["last_active_date"] == today.isoformat()


def test_push_rejects_negative_counters(client, student):
    r = client.post("/api/progress/push", json={"activity": [{"date": utc_today().isoformat(), "time_spent": -1}]})
    assert r.status_code == 400
