import sys
from pathlib import Path
import uuid
import time

import pytest
from fastapi.testclient import TestClient

backend_dir = Path(__file__).resolve().parents[1]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db import session as session_module
from app.main import create_app

# Import models so that they are registered in Base.metadata before create_all.
import app.models  # noqa: F401
from app.core.security import hash_password
from app.models.quiz import Option, Question, Quiz
from app.models.material import Material, MaterialType
from app.models.topic import ContentStatus, Topic
from app.models.user import User, UserRole


PASSWORD = "testpass123"


class _MemoryRedis:
    def __init__(self):
        self._data: dict[str, tuple[str, float | None]] = {}

    def ping(self):
        return True

    def _now(self) -> float:
        return time.time()

    def _get_entry(self, key: str):
        v = self._data.get(key)
        if not v:
            return None
        value, exp = v
        if exp is not None and exp <= self._now():
            self._data.pop(key, None)
            return None
        return value, exp

    def get(self, key: str):
        entry = self._get_entry(key)
        return entry[0] if entry else None

    def set(self, key: str, value: str, ex: int | None = None, nx: bool = False):
        if nx and self._get_entry(key) is not None:
            return None
        exp = (self._now() + int(ex)) if ex else None
        self._data[key] = (value, exp)
        return True

    def delete(self, key: str):
        self._data.pop(key, None)
        return 1

    def incr(self, key: str):
        cur = self.get(key)
        n = int(cur or 0) + 1
        _, exp = self._data.get(key, ("", None))
        self._data[key] = (str(n), exp)
        return n

    def expire(self, key: str, seconds: int):
        entry = self._get_entry(key)
        if not entry:
            return False
        value, _ = entry
        self._data[key] = (value, self._now() + int(seconds))
        return True

    def ttl(self, key: str):
        entry = self._get_entry(key)
        if not entry:
            return -2
        _, exp = entry
        if exp is None:
            return -1
        return max(0, int(exp - self._now()))

    def flushall(self):
        self._data.clear()


# Configure test DB (SQLite in-memory) at import time so all tests importing
# app.db.session.SessionLocal will get the patched version.
_engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
Base.metadata.create_all(bind=_engine)
session_module.engine = _engine
session_module.SessionLocal = session_module.sessionmaker(autocommit=False, autoflush=False, bind=_engine)


# Stub Redis at import time (rate limiting, cron locks, readiness).
_mem_redis = _MemoryRedis()
import app.core.redis_client as redis_client_module

redis_client_module.get_redis = lambda: _mem_redis

import app.core.rate_limit as rate_limit_module
rate_limit_module.get_redis = lambda: _mem_redis

import app.core.queue as queue_module
queue_module.get_redis = lambda: _mem_redis

import app.routers.health as health_router_module
health_router_module.get_redis = lambda: _mem_redis


@pytest.fixture(autouse=True)
def _reset_redis():
    _mem_redis.flushall()
    yield


@pytest.fixture(scope="session")
def app():
    app = create_app()

    # Ensure app dependencies use our session factory.
    def _get_db_override():
        db = session_module.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[session_module.get_db] = _get_db_override
    return app


@pytest.fixture()
def anon_client(app):
    """A client without the CSRF header; each test gets its own cookie jar."""
    return TestClient(app)


@pytest.fixture()
def client(app):
    c = TestClient(app)
    r = c.get("/api/auth/csrf")
    assert r.status_code == 200
    c.headers["x-csrf-token"] = r.json()["csrf_token"]
    return c


@pytest.fixture()
def db():
    with session_module.SessionLocal() as session:
        yield session


def create_user(*, role: UserRole = UserRole.STUDENT, password: str = PASSWORD, **fields) -> User:
    email = fields.pop("email", None) or f"{role.value.lower()}_{uuid.uuid4().hex[:8]}@example.com"
    with session_module.SessionLocal() as db:
        user = User(
            email=email,
            name=fields.pop("name", email.split("@")[0]),
            role=role,
            xp=fields.pop("xp", 0),
            email_verified=fields.pop("email_verified", True),
            password_hash=hash_password(password),
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        db.expunge(user)
        return user


def login(client: TestClient, user: User, *, password: str = PASSWORD) -> dict:
    r = client.post("/api/auth/login", json={"email": user.email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["user"]


@pytest.fixture()
def student(client):
    user = create_user(role=UserRole.STUDENT)
    login(client, user)
    return user


@pytest.fixture()
def editor(client):
    user = create_user(role=UserRole.EDITOR)
    login(client, user)
    return user


@pytest.fixture()
def admin(client):
    user = create_user(role=UserRole.ADMIN)
    login(client, user)
    return user


def seed_topic(*, status: ContentStatus = ContentStatus.Published, parent_id=None, **fields) -> Topic:
    slug = fields.pop("slug", None) or f"topic-{uuid.uuid4().hex[:8]}"
    with session_module.SessionLocal() as db:
        topic = Topic(
            name=fields.pop("name", slug),
            slug=slug,
            description=fields.pop("description", ""),
            status=status,
            parent_id=parent_id,
            **fields,
        )
        db.add(topic)
        db.commit()
        db.refresh(topic)
        db.expunge(topic)
        return topic


def seed_material(topic_id, *, status: ContentStatus = ContentStatus.Published, **fields) -> Material:
    with session_module.SessionLocal() as db:
        material = Material(
            topic_id=topic_id,
            title=fields.pop("title", "Intro"),
            type=fields.pop("type", MaterialType.text),
            content=fields.pop("content", "Some text"),
            status=status,
            views=0,
            **fields,
        )
        db.add(material)
        db.commit()
        db.refresh(material)
        db.expunge(material)
        return material


def seed_quiz(topic_id, *, status: ContentStatus = ContentStatus.Published, questions: int = 2, **fields) -> dict:
    """Creates a quiz whose first option is always the correct one."""
    with session_module.SessionLocal() as db:
        quiz = Quiz(
            topic_id=topic_id,
            title=fields.pop("title", "Quiz"),
            duration_sec=fields.pop("duration_sec", 60),
            status=status,
            **fields,
        )
        db.add(quiz)
        db.flush()

        out = {"quiz_id": quiz.id, "questions": []}
        for i in range(questions):
            q = Question(quiz_id=quiz.id, text=f"Question number {i + 1}", explanation=f"Because {i + 1}", tags=[])
            db.add(q)
            db.flush()
            right = Option(question_id=q.id, text="right", correct=True, position=0)
            wrong = Option(question_id=q.id, text="wrong", correct=False, position=1)
            db.add_all([right, wrong])
            db.flush()
            out["questions"].append({"id": q.id, "right": right.id, "wrong": wrong.id})
        db.commit()
        return out
