from __future__ import annotations

from fastapi import Response

from app.core.config import settings


ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
CSRF_COOKIE = "csrf_token"

REFRESH_COOKIE_PATH = "/api/auth"


def _cookie_flags() -> dict:
    if settings.is_prod:
        return {"secure": True, "samesite": "none"}
    return {"secure": False, "samesite": "lax"}


def set_auth_cookies(response: Response, *, access_token: str, refresh_token: str) -> None:
    flags = _cookie_flags()
    response.set_cookie(
        ACCESS_COOKIE,
        access_token,
        max_age=int(settings.jwt_access_token_minutes) * 60,
        httponly=True,
        path="/",
        **flags,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        max_age=int(settings.jwt_refresh_token_days) * 24 * 60 * 60,
        httponly=True,
        path=REFRESH_COOKIE_PATH,
        **flags,
    )


def clear_auth_cookies(response: Response) -> None:
    flags = _cookie_flags()
    response.delete_cookie(ACCESS_COOKIE, path="/", httponly=True, **flags)
    response.delete_cookie(REFRESH_COOKIE, path=REFRESH_COOKIE_PATH, httponly=True, **flags)


def set_csrf_cookie(response: Response, token: str) -> None:
    # readable by the frontend so it can echo it back in x-csrf-token
    response.set_cookie(
        CSRF_COOKIE,
        token,
        max_age=int(settings.csrf_token_max_age_seconds),
        httponly=False,
        path="/",
        **_cookie_flags(),
    )
