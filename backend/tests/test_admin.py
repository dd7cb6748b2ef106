from fastapi.testclient import TestClient

from sqlalchemy import select

from app.db import session as session_module
from app.models.attempt import Answer, QuizAttempt
from app.models.quiz import Option
from app.models.topic import ContentStatus
from app.models.user import User, UserRole

from conftest import PASSWORD, create_user, seed_material, seed_quiz, seed_topic


def test_stats_for_staff(client, editor):
    topic = seed_topic()
    seed_material(topic.id)
    seed_quiz(topic.id)

    r = client.get("/api/admin/stats")
    assert r.status_code == 200
    body = r.json()
    assert body["users"]["total"] >= 1
    assert set(body["users"]["by_role"].keys()) == {r.value for r in UserRole}
    assert body["materials"]["published"] >= 1
    assert body["quizzes"]["total"] >= 1
    assert isinstance(body["recent_activity"], list)


def test_list_users_search_and_role(client, admin):
    target = create_user(name="Findable Person")

    r = client.get("/api/admin/users", params={"search": "findable"})
    assert r.status_code == 200
    assert [u["id"] for u in r.json()["users"]] == [str(target.id)]

    r = client.get("/api/admin/users", params={"role": "ADMIN"})
    assert all(u["role"] == "ADMIN" for u in r.json()["users"])


def test_get_user_details(client, admin):
    target = create_user()
    r = client.get(f"/api/admin/users/{target.id}")
    assert r.status_code == 200
    assert r.json()["quiz_attempts"] == 0
    assert r.json()["materials_viewed"] == 0


def test_change_role(client, admin):
    target = create_user()
    r = client.put(f"/api/admin/users/{target.id}/role", json={"role": "EDITOR"})
    assert r.status_code == 200
    assert r.json()["role"] == "EDITOR"

    r = client.put(f"/api/admin/users/{admin.id}/role", json={"role": "STUDENT"})
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Cannot change your own role"


def test_verify_user(client, admin):
    target = create_user(email_verified=False)
    r = client.put(f"/api/admin/users/{target.id}/verify")
    assert r.status_code == 200
    assert r.json()["email_verified"] is True


def test_create_user_and_duplicate(client, admin):
    body = {"email": "made.by.admin@example.com", "password": "strongpass1", "name": "Made", "role": "EDITOR"}
    r = client.post("/api/admin/users", json=body)
    assert r.status_code == 200, r.text
    assert r.json()["role"] == "EDITOR"
    assert r.json()["email_verified"] is True

    r = client.post("/api/admin/users", json=body)
    assert r.status_code == 409


def test_delete_user(app, client, admin):
    target = create_user()
    assert client.delete(f"/api/admin/users/{admin.id}").status_code == 400

    r = client.delete(f"/api/admin/users/{target.id}")
    assert r.status_code == 200
    assert client.get(f"/api/admin/users/{target.id}").status_code == 404

    with session_module.SessionLocal() as db:
        assert db.get(User, target.id).deleted_at is not None

    other = TestClient(app)
    csrf = other.get("/api/auth/csrf").json()["csrf_token"]
    r = other.post(
        "/api/auth/login",
        json={"email": target.email, "password": PASSWORD},
        headers={"x-csrf-token": csrf},
    )
    assert r.status_code == 401


def test_user_management_is_admin_only(client, editor):
    assert client.get("/api/admin/users").status_code == 403


def _add_option(question_id, *, correct=False) -> Option:
    with session_module.SessionLocal() as db:
        option = Option(question_id=question_id, text="extra", correct=correct, position=2)
        db.add(option)
        db.commit()
        db.refresh(option)
        db.expunge(option)
        return option


def test_update_option_keeps_a_correct_answer(client, editor):
    question = seed_quiz(seed_topic().id, questions=1)["questions"][0]

    r = client.put(f"/api/admin/content/options/{question['right']}", json={"correct": False})
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "At least one option must be correct"

    r = client.put(f"/api/admin/content/options/{question['wrong']}", json={"correct": True, "text": "also right"})
    assert r.status_code == 200, r.text
    assert r.json() == {"id": str(question["wrong"]), "text": "also right", "text_json": None, "correct": True}

    r = client.put(f"/api/admin/content/options/{question['right']}", json={"correct": False})
    assert r.status_code == 200
    assert r.json()["correct"] is False


def test_delete_option_removes_its_answers(client, editor):
    quiz = seed_quiz(seed_topic().id, questions=1)
    question = quiz["questions"][0]
    extra = _add_option(question["id"])

    student = create_user()
    with session_module.SessionLocal() as db:
        attempt = QuizAttempt(quiz_id=quiz["quiz_id"], user_id=student.id, score=0, total=1, xp_earned=0)
        db.add(attempt)
        db.flush()
        db.add(Answer(attempt_id=attempt.id, user_id=student.id, question_id=question["id"], option_id=extra.id))
        db.commit()

    r = client.delete(f"/api/admin/content/options/{extra.id}")
    assert r.status_code == 200, r.text
    assert r.json() == {"deleted": True}

    with session_module.SessionLocal() as db:
        assert db.get(Option, extra.id) is None
        assert db.scalars(select(Answer).where(Answer.option_id == extra.id)).all() == []

    assert client.delete(f"/api/admin/content/options/{extra.id}").status_code == 404


def test_delete_option_keeps_question_answerable(client, editor):
    question = seed_quiz(seed_topic().id, questions=1)["questions"][0]

    # two options left: neither may go
    assert client.delete(f"/api/admin/content/options/{question['wrong']}").status_code == 400

    _add_option(question["id"])
    r = client.delete(f"/api/admin/content/options/{question['right']}")
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "At least one option must be correct"


def test_option_edits_require_staff(client, student):
    question = seed_quiz(seed_topic().id, questions=1)["questions"][0]
    assert client.put(f"/api/admin/content/options/{question['wrong']}", json={"correct": True}).status_code == 403
    assert client.delete(f"/api/admin/content/options/{question['wrong']}").status_code == 403


def test_export_nests_topics_with_content(client, admin):
    root = seed_topic()
    child = seed_topic(parent_id=root.id)
    material = seed_material(root.id, status=ContentStatus.Draft)
    quiz = seed_quiz(child.id, questions=1)

    r = client.get("/api/admin/content/export")
    assert r.status_code == 200
    assert r.headers["Content-Disposition"] == "attachment; filename=content.json"

    exported = next(t for t in r.json() if t["id"] == str(root.id))
    assert [m["id"] for m in exported["materials"]] == [str(material.id)]
    assert exported["quizzes"] == []

    nested = exported["children"][0]
    assert nested["id"] == str(child.id)
    assert nested["quizzes"][0]["id"] == str(quiz["quiz_id"])
    options = nested["quizzes"][0]["questions"][0]["options"]
    assert {o["id"]: o["correct"] for o in options} == {
        str(quiz["questions"][0]["right"]): True,
        str(quiz["questions"][0]["wrong"]): False,
    }
    # only roots at the top level
    assert str(child.id) not in {t["id"] for t in r.json()}


def test_export_is_admin_only(client, editor):
    assert client.get("/api/admin/content/export").status_code == 403
