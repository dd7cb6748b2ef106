from __future__ import annotations

import redis

from app.core.config import settings


def get_redis() -> redis.Redis:
    # short timeouts: rate limiting fails open rather than stalling requests
    return redis.Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=float(settings.redis_socket_timeout_seconds),
        socket_timeout=float(settings.redis_socket_timeout_seconds),
    )
