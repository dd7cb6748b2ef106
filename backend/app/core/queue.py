from __future__ import annotations

import redis
from rq import Queue
from rq.job import Job

from app.core.config import settings
from app.core.redis_client import get_redis


def get_queue(name: str | None = None) -> Queue:
    conn = redis.Redis.from_url(settings.redis_url)
    eff = str(name or "").strip() or str(settings.rq_queue_default)
    return Queue(name=eff, connection=conn)


def enqueue_with_lock(func, *, lock_key: str, lock_ttl: int, **job_kwargs) -> Job | None:
    """Enqueues `func` unless another caller holds `lock_key`.

    Returns None when the lock is taken.
    """
    r = get_redis()
    acquired = r.set(lock_key, "1", nx=True, ex=max(1, int(lock_ttl)))
    if not acquired:
        return None

    q = get_queue()
    return q.enqueue(
        func,
        job_timeout=60 * 10,
        result_ttl=60 * 60,
        failure_ttl=60 * 60,
        **job_kwargs,
    )
