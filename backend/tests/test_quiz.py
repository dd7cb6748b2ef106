import time

from sqlalchemy import select

from app.db import session as session_module
from app.models.attempt import Answer, QuizAttempt
from app.models.progress import UserActivity
from app.models.topic import ContentStatus
from app.models.user import User, UserRole
from app.services.quiz import issue_quiz_token

from conftest import create_user, login, seed_quiz, seed_topic


def _submit(client, quiz_id, token, answers, **extra):
    return client.post(f"/api/quiz/{quiz_id}/submit", json={"token": token, "answers": answers, **extra})


def _answers(quiz, pick="right"):
    return [{"question_id": str(q["id"]), "option_id": str(q[pick])} for q in quiz["questions"]]


def test_start_quiz_hides_correct_flags(client, student):
    quiz = seed_quiz(seed_topic().id, questions=3)
    r = client.get(f"/api/quiz/{quiz['quiz_id']}")
    assert r.status_code == 200
    body = r.json()
    assert body["token"]
    assert len(body["questions"]) == 3
    for q in body["questions"]:
        assert len(q["options"]) == 2
        for o in q["options"]:
            assert set(o.keys()) == {"id", "text"}


def test_full_score_awards_xp(client, student):
    quiz = seed_quiz(seed_topic().id)
    token = client.get(f"/api/quiz/{quiz['quiz_id']}").json()["token"]

    r = _submit(client, quiz["quiz_id"], token, _answers(quiz))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["correct"] == 2
    assert body["total"] == 2
    assert body["score"] == 100
    assert body["passed"] is True
    assert body["xp_earned"] == 20
    assert body["correct_map"] == {str(q["id"]): str(q["right"]) for q in quiz["questions"]}
    assert set(body["solutions"].keys()) == {str(q["id"]) for q in quiz["questions"]}

    with session_module.SessionLocal() as db:
        assert db.get(User, student.id).xp == 20
        attempt = db.scalar(select(QuizAttempt).where(QuizAttempt.user_id == student.id))
        assert (attempt.score, attempt.total, attempt.xp_earned) == (2, 2, 20)
        assert len(db.scalars(select(Answer).where(Answer.attempt_id == attempt.id)).all()) == 2
        activity = db.scalar(select(UserActivity).where(UserActivity.user_id == student.id))
        assert activity.quiz_attempts == 1


def test_failed_attempt_earns_nothing(client, student):
    quiz = seed_quiz(seed_topic().id)
    token = client.get(f"/api/quiz/{quiz['quiz_id']}").json()["token"]

    answers = _answers(quiz)
    answers[1]["option_id"] = str(quiz["questions"][1]["wrong"])
    body = _submit(client, quiz["quiz_id"], token, answers).json()
    assert body["correct"] == 1
    assert body["score"] == 50
    assert body["passed"] is False
    assert body["xp_earned"] == 0

    with session_module.SessionLocal() as db:
        assert db.get(User, student.id).xp == 0


def test_half_percent_scores_round_up(client, student):
    quiz = seed_quiz(seed_topic().id, questions=8)
    token = client.get(f"/api/quiz/{quiz['quiz_id']}").json()["token"]

    answers = [
        {"question_id": str(q["id"]), "option_id": str(q["right"] if i < 5 else q["wrong"])}
        for i, q in enumerate(quiz["questions"])
    ]
    body = _submit(client, quiz["quiz_id"], token, answers).json()
    assert (body["correct"], body["total"]) == (5, 8)
    assert body["score"] == 63
    assert body["passed"] is False


def test_unanswered_questions_count_against_total(client, student):
    quiz = seed_quiz(seed_topic().id, questions=2)
    token = client.get(f"/api/quiz/{quiz['quiz_id']}").json()["token"]
    body = _submit(client, quiz["quiz_id"], token, _answers(quiz)[:1]).json()
    assert (body["correct"], body["total"]) == (1, 2)


def test_last_answer_per_question_wins(client, student):
    quiz = seed_quiz(seed_topic().id, questions=1)
    q = quiz["questions"][0]
    token = client.get(f"/api/quiz/{quiz['quiz_id']}").json()["token"]

    answers = [
        {"question_id": str(q["id"]), "option_id": str(q["wrong"])},
        {"question_id": str(q["id"]), "option_id": str(q["right"])},
    ]
    body = _submit(client, quiz["quiz_id"], token, answers).json()
    assert body["correct"] == 1

    with session_module.SessionLocal() as db:
        rows = db.scalars(select(Answer).where(Answer.question_id == q["id"])).all()
        assert len(rows) == 1


def test_option_from_another_question_is_ignored(client, student):
    quiz = seed_quiz(seed_topic().id, questions=2)
    q1, q2 = quiz["questions"]
    token = client.get(f"/api/quiz/{quiz['quiz_id']}").json()["token"]
    body = _submit(client, quiz["quiz_id"], token, [{"question_id": str(q1["id"]), "option_id": str(q2["right"])}]).json()
    assert body["correct"] == 0


def test_expired_token_is_rejected(client, student):
    quiz = seed_quiz(seed_topic().id, duration_sec=60)
    past = int(time.time() * 1000) - 60 * 60 * 1000
    token = issue_quiz_token(quiz_id=quiz["quiz_id"], user_id=student.id, duration_sec=60, now_ms=past)

    r = _submit(client, quiz["quiz_id"], token, _answers(quiz))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "QUIZ_TIME_EXCEEDED"


def test_grace_period_accepts_slightly_late_submit(client, student):
    quiz = seed_quiz(seed_topic().id, duration_sec=60)
    # 60s quiz started 90s ago is still inside the grace window
    started = int(time.time() * 1000) - 90 * 1000
    token = issue_quiz_token(quiz_id=quiz["quiz_id"], user_id=student.id, duration_sec=60, now_ms=started)
    assert _submit(client, quiz["quiz_id"], token, _answers(quiz)).status_code == 200


def test_token_for_other_quiz_or_user_is_rejected(client, student):
    topic = seed_topic()
    quiz = seed_quiz(topic.id)
    other = seed_quiz(topic.id)

    token = client.get(f"/api/quiz/{other['quiz_id']}").json()["token"]
    r = _submit(client, quiz["quiz_id"], token, _answers(quiz))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "QUIZ_TOKEN_MISMATCH"

    stranger = create_user()
    token = issue_quiz_token(quiz_id=quiz["quiz_id"], user_id=stranger.id, duration_sec=60)
    r = _submit(client, quiz["quiz_id"], token, _answers(quiz))
    assert r.status_code == 403


def test_garbage_token_is_401(client, student):
    quiz = seed_quiz(seed_topic().id)
    r = _submit(client, quiz["quiz_id"], "not-a-jwt", _answers(quiz))
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "TOKEN_INVALID"


def test_draft_quiz_hidden_from_students(client):
    quiz = seed_quiz(seed_topic().id, status=ContentStatus.Draft)

    login(client, create_user())
    assert client.get(f"/api/quiz/{quiz['quiz_id']}").status_code == 404

    login(client, create_user(role=UserRole.EDITOR))
    assert client.get(f"/api/quiz/{quiz['quiz_id']}").status_code == 200


def test_quiz_localization(client, student):
    quiz = seed_quiz(seed_topic().id, title="Basics", title_json={"UA": "Основи"})
    r = client.get(f"/api/quiz/{quiz['quiz_id']}", params={"lang": "ua"})
    assert r.json()["title"] == "Основи"
    assert client.get(f"/api/quiz/{quiz['quiz_id']}", params={"lang": "xx"}).status_code == 400


def test_history_is_paginated(client, student):
    topic = seed_topic()
    first = seed_quiz(topic.id, title="First")
    second = seed_quiz(topic.id, title="Second")
    for quiz in (first, second):
        token = client.get(f"/api/quiz/{quiz['quiz_id']}").json()["token"]
        assert _submit(client, quiz["quiz_id"], token, _answers(quiz)).status_code == 200

    r = client.get("/api/quiz/user/history", params={"limit": 1})
    assert r.status_code == 200
    body = r.json()
    assert body["pagination"]["total"] == 2
    assert body["pagination"]["total_pages"] == 2
    assert len(body["data"]) == 1

    titles = {d["quiz_title"] for d in client.get("/api/quiz/user/history").json()["data"]}
    assert titles == {"First", "Second"}
