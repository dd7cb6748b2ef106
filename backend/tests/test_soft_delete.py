from sqlalchemy import select

from app.db import session as session_module
from app.models.material import Material
from app.models.quiz import Quiz

from conftest import create_user, login, seed_material, seed_quiz, seed_topic


def test_deleted_material_is_hidden_but_kept(client, editor):
    topic = seed_topic()
    material = seed_material(topic.id)

    r = client.delete(f"/api/editor/topics/{topic.id}/materials/{material.id}")
    assert r.status_code == 200

    assert client.get(f"/api/lessons/{material.id}").status_code == 404
    r = client.get(f"/api/editor/topics/{topic.id}/materials")
    assert [m["id"] for m in r.json()["materials"]] == []

    with session_module.SessionLocal() as db:
        assert db.get(Material, material.id) is None
        row = db.scalar(select(Material).where(Material.id == material.id).execution_options(include_deleted=True))
        assert row is not None
        assert row.deleted_at is not None


def test_deleting_material_twice_is_404(client, editor):
    topic = seed_topic()
    material = seed_material(topic.id)
    assert client.delete(f"/api/editor/topics/{topic.id}/materials/{material.id}").status_code == 200
    assert client.delete(f"/api/editor/topics/{topic.id}/materials/{material.id}").status_code == 404


def test_material_delete_checks_topic(client, editor):
    topic = seed_topic()
    other = seed_topic()
    material = seed_material(topic.id)
    assert client.delete(f"/api/editor/topics/{other.id}/materials/{material.id}").status_code == 404


def test_deleted_quiz_cannot_be_started(client, editor):
    topic = seed_topic()
    quiz = seed_quiz(topic.id)

    r = client.delete(f"/api/editor/topics/{topic.id}/quizzes/{quiz['quiz_id']}")
    assert r.status_code == 200

    assert client.get(f"/api/quiz/{quiz['quiz_id']}").status_code == 404
    r = client.get(f"/api/topics/{topic.slug}")
    assert r.json()["quizzes"] == []

    with session_module.SessionLocal() as db:
        row = db.scalar(select(Quiz).where(Quiz.id == quiz["quiz_id"]).execution_options(include_deleted=True))
        assert row.is_deleted


def test_history_keeps_attempts_of_deleted_quiz(app, client):
    topic = seed_topic()
    quiz = seed_quiz(topic.id, title="Gone soon")

    student = create_user()
    login(client, student)
    start = client.get(f"/api/quiz/{quiz['quiz_id']}").json()
    answers = [{"question_id": str(q["id"]), "option_id": str(q["right"])} for q in quiz["questions"]]
    r = client.post(f"/api/quiz/{quiz['quiz_id']}/submit", json={"token": start["token"], "answers": answers})
    assert r.status_code == 200

    with session_module.SessionLocal() as db:
        db.get(Quiz, quiz["quiz_id"]).soft_delete()
        db.commit()

    r = client.get("/api/quiz/user/history")
    assert r.status_code == 200
    data = r.json()["data"]
    assert [d["quiz_title"] for d in data] == ["Gone soon"]
