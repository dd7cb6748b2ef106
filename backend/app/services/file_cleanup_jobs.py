from __future__ import annotations

import logging

from rq import get_current_job

from app.core.config import settings
from app.db import session as db_session
from app.services.files import cleanup_unconfirmed


log = logging.getLogger(__name__)


def cleanup_unconfirmed_files_job(*, ttl_hours: int | None = None) -> dict:
    """Removes uploads whose presigned PUT was never confirmed.

    Safe to run repeatedly.
    """
    ttl = int(ttl_hours if ttl_hours is not None else settings.uploads_unconfirmed_ttl_hours)

    with db_session.SessionLocal() as db:
        out = cleanup_unconfirmed(db, ttl_hours=ttl)
    out = {"ok": True, "ttl_hours": ttl, **out}

    job = get_current_job()
    if job is not None:
        meta = dict(job.meta or {})
        meta.update(out)
        job.meta = meta
        job.save_meta()

    log.info(
        "cleanup_unconfirmed_files_job: ttl_hours=%s deleted_rows=%s deleted_objects=%s",
        ttl,
        out["deleted_rows"],
        out["deleted_objects"],
    )
    return out
