import hmac
import logging

from fastapi import APIRouter, Request
from sqlalchemy import text

from app.core.config import settings
from app.core.errors import ErrorCode, api_error, forbidden, not_found
from app.core.queue import enqueue_with_lock
from app.core.redis_client import get_redis
from app.db import session as db_session
from app.services.file_cleanup_jobs import cleanup_unconfirmed_files_job
from app.services.storage import get_s3_client

log = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _require_cron_secret(request: Request) -> None:
    secret = str(settings.cron_secret or "").strip()
    if not secret:
        raise not_found("Not found")

    provided = str(request.headers.get("x-cron-secret") or "").strip()
    if not provided or not hmac.compare_digest(provided, secret):
        raise forbidden("Invalid cron secret")


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/live")
def live():
    return {"status": "live"}


@router.get("/health/ready")
def ready():
    try:
        db = db_session.SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as e:
        log.warning("readiness: db check failed: %s", e)
        raise api_error(503, ErrorCode.SERVICE_UNAVAILABLE, "Database not ready") from e

    try:
        get_redis().ping()
    except Exception as e:
        log.warning("readiness: redis check failed: %s", e)
        raise api_error(503, ErrorCode.SERVICE_UNAVAILABLE, "Redis not ready") from e

    try:
        get_s3_client().head_bucket(Bucket=settings.s3_bucket)
    except Exception as e:
        log.warning("readiness: s3 check failed: %s", e)
        raise api_error(503, ErrorCode.SERVICE_UNAVAILABLE, "Storage not ready") from e

    return {"status": "ready"}


@router.post("/health/cron/files-cleanup")
def cron_files_cleanup(request: Request):
    _require_cron_secret(request)

    interval_seconds = max(60, int(settings.uploads_cleanup_interval_minutes) * 60)
    job = enqueue_with_lock(
        cleanup_unconfirmed_files_job,
        lock_key="locks:files_cleanup",
        lock_ttl=max(60, interval_seconds - 5),
        ttl_hours=int(settings.uploads_unconfirmed_ttl_hours),
    )
    if job is None:
        return {"ok": True, "enqueued": False, "reason": "locked"}
    return {"ok": True, "enqueued": True, "job_id": str(job.id)}
