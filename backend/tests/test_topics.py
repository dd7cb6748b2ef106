import uuid

from fastapi.testclient import TestClient
from sqlalchemy import select

from app.db import session as session_module
from app.models.material import Material
from app.models.quiz import Option, Question, Quiz
from app.models.topic import ContentStatus, Topic

from conftest import seed_material, seed_quiz, seed_topic


def _slug() -> str:
    return f"t-{uuid.uuid4().hex[:10]}"


def _find(topics: list[dict], slug: str) -> dict | None:
    return next((t for t in topics if t["slug"] == slug), None)


def test_create_topic_and_duplicate_slug(client, editor):
    slug = _slug()
    body = {"name": "Python", "slug": slug, "category": "Programming", "status": "Published"}
    r = client.post("/api/admin/content/topics", json=body)
    assert r.status_code == 200, r.text
    created = r.json()
    assert created["slug"] == slug
    assert created["published_at"] is not None

    r = client.post("/api/admin/content/topics", json=body)
    assert r.status_code == 409
    assert r.json()["error"]["message"] == "Topic with this slug already exists"


def test_create_topic_rejects_bad_slug(client, editor):
    r = client.post("/api/admin/content/topics", json={"name": "Bad", "slug": "Not Valid!"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_create_topic_with_missing_parent_is_404(client, editor):
    r = client.post("/api/admin/content/topics", json={"name": "Orphan", "slug": _slug(), "parent_id": str(uuid.uuid4())})
    assert r.status_code == 404


def test_topic_cannot_be_its_own_parent(client, editor):
    topic = seed_topic()
    r = client.put(f"/api/admin/content/topics/{topic.id}", json={"parent_id": str(topic.id)})
    assert r.status_code == 400


def test_topic_cannot_be_moved_under_its_descendant(client, editor):
    root = seed_topic()
    child = seed_topic(parent_id=root.id)
    grandchild = seed_topic(parent_id=child.id)

    r = client.put(f"/api/admin/content/topics/{root.id}", json={"parent_id": str(grandchild.id)})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"

    with session_module.SessionLocal() as db:
        assert db.get(Topic, root.id).parent_id is None

    sibling = seed_topic()
    r = client.put(f"/api/admin/content/topics/{sibling.id}", json={"parent_id": str(grandchild.id)})
    assert r.status_code == 200, r.text


def test_draft_topics_hidden_from_students(app, client, editor):
    draft = seed_topic(status=ContentStatus.Draft)

    anon = TestClient(app)
    r = anon.get("/api/topics", params={"search": draft.slug})
    assert r.status_code == 200
    assert _find(r.json()["topics"], draft.slug) is None
    assert anon.get(f"/api/topics/{draft.slug}").status_code == 404

    r = client.get("/api/topics", params={"search": draft.slug})
    assert _find(r.json()["topics"], draft.slug) is not None
    assert client.get(f"/api/topics/{draft.slug}").status_code == 200


def test_list_topics_nests_children_and_filters_content(anon_client):
    root = seed_topic()
    child = seed_topic(parent_id=root.id)
    seed_material(root.id, title="Visible")
    seed_material(root.id, title="Hidden", status=ContentStatus.Draft)
    seed_material(child.id, title="Child material")
    seed_quiz(root.id)

    r = anon_client.get("/api/topics", params={"search": root.slug})
    assert r.status_code == 200
    body = r.json()
    node = _find(body["topics"], root.slug)
    assert [m["title"] for m in node["materials"]] == ["Visible"]
    assert len(node["quizzes"]) == 1
    assert [c["slug"] for c in node["children"]] == [child.slug]
    assert node["total_materials"] == 2
    assert body["pagination"]["page"] == 1
    assert body["pagination"]["total"] >= 1
    # children are not listed as roots
    assert _find(body["topics"], child.slug) is None


def test_get_topic_by_slug_includes_parent_and_counts(anon_client):
    root = seed_topic()
    child = seed_topic(parent_id=root.id)
    seed_material(child.id)

    r = anon_client.get(f"/api/topics/{child.slug}")
    assert r.status_code == 200
    assert r.json()["parent"]["slug"] == root.slug

    r = anon_client.get(f"/api/topics/{root.slug}")
    assert r.json()["children"][0]["material_count"] == 1

    assert anon_client.get("/api/topics/unknown-slug-here").status_code == 404


def test_topic_localization(anon_client):
    topic = seed_topic(name_json={"UA": "Алгоритми", "EN": "Algorithms"})

    r = anon_client.get(f"/api/topics/{topic.slug}", params={"lang": "UA"})
    assert r.json()["name"] == "Алгоритми"
    r = anon_client.get(f"/api/topics/{topic.slug}", params={"lang": "PL"})
    assert r.json()["name"] == "Algorithms"

    r = anon_client.get(f"/api/topics/{topic.slug}", params={"lang": "XX"})
    assert r.status_code == 400


def test_update_topic_publishes(client, editor):
    topic = seed_topic(status=ContentStatus.Draft)
    r = client.put(f"/api/admin/content/topics/{topic.id}", json={"status": "Published", "name": "Renamed"})
    assert r.status_code == 200
    assert r.json()["name"] == "Renamed"
    assert r.json()["published_at"] is not None


def test_delete_topic_removes_content_and_detaches_children(client, editor):
    root = seed_topic()
    child = seed_topic(parent_id=root.id)
    material = seed_material(root.id)
    quiz = seed_quiz(root.id)

    r = client.delete(f"/api/admin/content/topics/{root.id}")
    assert r.status_code == 200

    with session_module.SessionLocal() as db:
        assert db.get(Topic, root.id) is None
        assert db.get(Topic, child.id).parent_id is None
        assert db.scalar(select(Material).where(Material.id == material.id).execution_options(include_deleted=True)) is None
        assert db.scalar(select(Quiz).where(Quiz.id == quiz["quiz_id"]).execution_options(include_deleted=True)) is None
        qids = [q["id"] for q in quiz["questions"]]
        assert db.scalars(select(Question).where(Question.id.in_(qids))).all() == []
        assert db.scalars(select(Option).where(Option.question_id.in_(qids))).all() == []


def test_content_tree_lists_counts(client, editor):
    root = seed_topic()
    seed_material(root.id)
    seed_quiz(root.id)

    r = client.get("/api/admin/content/topics")
    assert r.status_code == 200
    node = _find(r.json()["topics"], root.slug)
    assert node["material_count"] == 1
    assert node["quiz_count"] == 1
