from conftest import create_user, login
from app.models.user import UserRole


def test_anonymous_gets_401_on_protected_routes(client):
    assert client.get("/api/editor/topics").status_code == 401
    assert client.get("/api/admin/users").status_code == 401
    assert client.get("/api/progress/viewed").status_code == 401


def test_student_cannot_access_staff_endpoints(client, student):
    r = client.get("/api/editor/topics")
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "FORBIDDEN"
    assert client.get("/api/admin/stats").status_code == 403
    assert client.get("/api/admin/content/topics").status_code == 403


def test_editor_is_staff_but_not_admin(client, editor):
    assert client.get("/api/editor/topics").status_code == 200
    assert client.get("/api/admin/stats").status_code == 200
    assert client.get("/api/admin/users").status_code == 403
    assert client.get("/api/admin/audit-logs").status_code == 403


def test_admin_passes_every_role_check(client, admin):
    assert client.get("/api/editor/topics").status_code == 200
    assert client.get("/api/admin/users").status_code == 200
    assert client.get("/api/admin/audit-logs").status_code == 200
    assert client.get("/api/files").status_code == 200


def test_deleted_user_token_stops_working(client):
    user = create_user(role=UserRole.STUDENT)
    login(client, user)
    assert client.get("/api/auth/me").status_code == 200

    from app.db import session as session_module
    from app.db.base import utcnow
    from app.models.user import User

    with session_module.SessionLocal() as db:
        db.get(User, user.id).deleted_at = utcnow()
        db.commit()

    assert client.get("/api/auth/me").status_code == 401
