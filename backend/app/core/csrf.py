"""Stateless double-submit CSRF tokens.

A token is ``<unix_ms>.<hex hmac-sha256(secret, unix_ms)>``. The frontend reads
it from the ``csrf_token`` cookie and echoes it in the ``x-csrf-token`` header
on every state-changing request.
"""

from __future__ import annotations

import hashlib
import hmac
import time

from starlette.requests import Request

from app.core.config import settings
from app.core.cookies import CSRF_COOKIE


CSRF_HEADER = "x-csrf-token"

PROTECTED_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

EXEMPT_PATHS = frozenset(
    {
        "/api/auth/login",
        "/api/auth/register",
        "/api/auth/refresh",
        "/api/auth/forgot-password",
        "/api/auth/reset-password",
        "/api/auth/verify-email",
    }
)


def _sign(timestamp: str) -> str:
    return hmac.new(
        settings.csrf_signing_secret.encode("utf-8"),
        timestamp.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def generate_csrf_token(now_ms: int | None = None) -> str:
    ts = str(int(now_ms if now_ms is not None else time.time() * 1000))
    return f"{ts}.{_sign(ts)}"


def verify_csrf_token(token: str, *, now_ms: int | None = None) -> bool:
    parts = str(token or "").split(".")
    if len(parts) != 2:
        return False
    ts, signature = parts
    if not ts.isdigit() or not signature:
        return False

    if not hmac.compare_digest(signature, _sign(ts)):
        return False

    now = int(now_ms if now_ms is not None else time.time() * 1000)
    age_ms = now - int(ts)
    return 0 <= age_ms <= int(settings.csrf_token_max_age_seconds) * 1000


def requires_csrf(request: Request) -> bool:
    if request.method not in PROTECTED_METHODS:
        return False
    path = request.url.path
    if not path.startswith("/api/"):
        return False
    return path.rstrip("/") not in EXEMPT_PATHS


def check_csrf(request: Request) -> str | None:
    """Returns an error message, or None when the request passes."""
    header = str(request.headers.get(CSRF_HEADER) or "").strip()
    if not header:
        return "CSRF token missing"
    if not verify_csrf_token(header):
        return "CSRF token invalid or expired"

    cookie = request.cookies.get(CSRF_COOKIE)
    if cookie is not None and not hmac.compare_digest(cookie.encode("utf-8"), header.encode("utf-8")):
        return "CSRF token mismatch"
    return None
