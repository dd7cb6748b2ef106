from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from sqlalchemy.orm import Session

from app.core.request_meta import client_ip, user_agent
from app.models.audit import AuditLog


log = logging.getLogger(__name__)


class AuditAction:
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    VIEW = "VIEW"
    PUBLISH = "PUBLISH"
    UNPUBLISH = "UNPUBLISH"
    UPLOAD = "UPLOAD"
    DOWNLOAD = "DOWNLOAD"


class AuditResource:
    USER = "user"
    TOPIC = "topic"
    MATERIAL = "material"
    QUIZ = "quiz"
    QUESTION = "question"
    OPTION = "option"
    FILE = "file"
    TRANSLATION = "translation"
    SETTINGS = "settings"


REDACTED = "[REDACTED]"

SENSITIVE_KEYS = frozenset(
    {
        "password",
        "passwordhash",
        "password_hash",
        "token",
        "refreshtoken",
        "refresh_token",
        "apikey",
        "api_key",
        "secret",
        "privatekey",
        "creditcard",
        "ssn",
        "otp",
        "totpsecret",
    }
)


def sanitize_metadata(value: Any) -> Any:
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if str(k).lower() in SENSITIVE_KEYS:
                out[k] = REDACTED
            else:
                out[k] = sanitize_metadata(v)
        return out
    if isinstance(value, (list, tuple)):
        return [sanitize_metadata(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def audit_log(
    *,
    db: Session,
    request: Request | None,
    user_id=None,
    action: str,
    resource: str,
    resource_id=None,
    metadata: dict | None = None,
) -> None:
    """Adds an audit row to the caller's session; the caller commits."""
    db.add(
        AuditLog(
            user_id=user_id,
            action=str(action),
            resource=str(resource),
            resource_id=str(resource_id) if resource_id is not None else None,
            meta=sanitize_metadata(metadata) if metadata else None,
            ip_address=client_ip(request) if request is not None else None,
            user_agent=user_agent(request) if request is not None else None,
        )
    )
    log.debug("audit %s %s %s", action, resource, resource_id)
