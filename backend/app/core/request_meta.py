from __future__ import annotations

from starlette.requests import Request

from app.core.config import settings


USER_AGENT_MAX_LEN = 500


def request_id(request: Request) -> str | None:
    rid = getattr(getattr(request, "state", None), "request_id", None)
    rid = str(rid or "").strip()
    return rid or None


def normalize_ip(ip: str | None) -> str | None:
    value = str(ip or "").strip()
    if value.startswith("::ffff:"):
        value = value[len("::ffff:") :]
    return value or None


def client_ip(request: Request) -> str | None:
    if settings.trust_proxy_headers:
        xri = str(request.headers.get("x-real-ip") or "").strip()
        if xri:
            return normalize_ip(xri)
        xff = str(request.headers.get("x-forwarded-for") or "")
        if xff:
            ip = xff.split(",")[0].strip()
            if ip:
                return normalize_ip(ip)
    if request.client and request.client.host:
        return normalize_ip(request.client.host)
    return None


def user_agent(request: Request) -> str | None:
    ua = str(request.headers.get("user-agent") or "").strip()
    if not ua:
        return None
    return ua[:USER_AGENT_MAX_LEN]
