from datetime import timedelta

from sqlalchemy import select

from app.db import session as session_module
from app.db.base import utcnow
from app.models.audit import AuditLog
from app.services.audit import REDACTED, sanitize_metadata

from conftest import create_user, login


def test_sanitize_metadata_redacts_nested_secrets():
    out = sanitize_metadata(
        {
            "email": "a@example.com",
            "Password": "hunter2",
            "nested": {"refresh_token": "abc", "items": [{"apiKey": "k", "ok": 1}]},
            "when": utcnow().date(),
        }
    )
    assert out["email"] == "a@example.com"
    assert out["Password"] == REDACTED
    assert out["nested"]["refresh_token"] == REDACTED
    assert out["nested"]["items"] == [{"apiKey": REDACTED, "ok": 1}]
    assert isinstance(out["when"], str)


def test_login_writes_audit_row(client):
    user = create_user()
    login(client, user)

    with session_module.SessionLocal() as db:
        row = db.scalar(select(AuditLog).where(AuditLog.user_id == user.id, AuditLog.action == "LOGIN"))
        assert row is not None
        assert row.resource == "user"
        assert row.user_agent


def test_audit_logs_filters(client, admin):
    other = create_user()
    with session_module.SessionLocal() as db:
        db.add_all(
            [
                AuditLog(user_id=other.id, action="CREATE", resource="topic", resource_id="t1"),
                AuditLog(user_id=other.id, action="DELETE", resource="topic", resource_id="t1"),
                AuditLog(
                    user_id=other.id,
                    action="CREATE",
                    resource="quiz",
                    resource_id="q1",
                    created_at=utcnow() - timedelta(days=10),
                ),
            ]
        )
        db.commit()

    r = client.get("/api/admin/audit-logs", params={"user_id": str(other.id)})
    assert r.status_code == 200
    assert r.json()["pagination"]["total"] == 3

    r = client.get("/api/admin/audit-logs", params={"user_id": str(other.id), "action": "create"})
    assert {log["resource"] for log in r.json()["logs"]} == {"topic", "quiz"}

    r = client.get("/api/admin/audit-logs", params={"user_id": str(other.id), "resource": "TOPIC"})
    assert r.json()["pagination"]["total"] == 2

    since = (utcnow() - timedelta(days=1)).isoformat()
    r = client.get("/api/admin/audit-logs", params={"user_id": str(other.id), "from": since})
    assert r.json()["pagination"]["total"] == 2


def test_audit_logs_are_admin_only(client, editor):
    assert client.get("/api/admin/audit-logs").status_code == 403
