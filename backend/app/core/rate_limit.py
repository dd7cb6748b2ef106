from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request

from app.core.config import settings
from app.core.errors import ErrorCode, api_error
from app.core.redis_client import get_redis
from app.core.request_meta import client_ip


@dataclass(frozen=True)
class RateLimit:
    key: str
    limit: int
    window_seconds: int


def _hit(key: str, *, limit: int, window_seconds: int) -> RateLimit:
    r = get_redis()
    try:
        current = r.incr(key)
        if current == 1:
            r.expire(key, int(window_seconds))
    except Exception:
        # fail open when redis is unavailable
        return RateLimit(key=key, limit=int(limit), window_seconds=int(window_seconds))

    if int(current) > int(limit):
        ttl = r.ttl(key)
        retry_after = int(ttl) if ttl and ttl > 0 else int(window_seconds)
        raise api_error(
            429,
            ErrorCode.RATE_LIMITED,
            "Too many requests, please try again later",
            headers={"Retry-After": str(retry_after)},
        )

    return RateLimit(key=key, limit=int(limit), window_seconds=int(window_seconds))


def rate_limit(*, key_prefix: str, limit: int, window_seconds: int):
    async def _dep(request: Request) -> RateLimit:
        ip = client_ip(request) or "unknown"
        key = f"rl:{key_prefix}:{request.method}:{request.url.path}:{ip}"
        return _hit(key, limit=limit, window_seconds=window_seconds)

    return Depends(_dep)


async def _api_dep(request: Request) -> RateLimit:
    # one budget per client across every /api route
    ip = client_ip(request) or "unknown"
    return _hit(
        f"rl:api:{ip}",
        limit=settings.rate_limit_api_max,
        window_seconds=settings.rate_limit_api_window_seconds,
    )


api_rate_limit = Depends(_api_dep)
