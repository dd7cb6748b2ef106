from __future__ import annotations

import logging
import math
import os
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.errors import ErrorCode, bad_request, forbidden, not_found
from app.db.base import utcnow
from app.models.file import File, FileCategory, FileVisibility
from app.models.material import Material
from app.models.user import User, UserRole
from app.services import storage


log = logging.getLogger(__name__)

MB = 1024 * 1024

ALLOWED_MIME_TYPES: dict[FileCategory, frozenset[str]] = {
    FileCategory.avatars: frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"}),
    FileCategory.materials: frozenset(
        {
            "application/pdf",
            "video/mp4",
            "video/webm",
            "video/quicktime",
            "image/jpeg",
            "image/png",
            "image/webp",
            "text/plain",
            "text/markdown",
            "application/epub+zip",
        }
    ),
    FileCategory.attachments: frozenset(
        {
            "application/pdf",
            "image/jpeg",
            "image/png",
            "image/webp",
            "application/zip",
            "application/x-zip-compressed",
            "text/plain",
        }
    ),
}

MAX_FILE_SIZES: dict[FileCategory, int] = {
    FileCategory.avatars: 5 * MB,
    FileCategory.materials: 500 * MB,
    FileCategory.attachments: 50 * MB,
}

DOWNLOAD_URL_TTL_SECONDS = 300


def validate_upload(category: FileCategory, mime_type: str, size: int) -> None:
    if mime_type not in ALLOWED_MIME_TYPES[category]:
        raise bad_request(f"File type {mime_type} not allowed for {category.value}", code=ErrorCode.VALIDATION_ERROR)
    max_size = MAX_FILE_SIZES[category]
    if int(size) > max_size:
        raise bad_request(f"File size exceeds {max_size // MB}MB limit", code=ErrorCode.VALIDATION_ERROR)


def generate_file_key(category: FileCategory, original_name: str, *, now: datetime | None = None) -> str:
    ext = os.path.splitext(str(original_name or ""))[1].lower()
    day = (now or datetime.now(timezone.utc)).strftime("%Y/%m/%d")
    return f"{category.value}/{day}/{uuid.uuid4()}{ext}"


def file_url(file: File) -> str:
    if file.visibility == FileVisibility.PUBLIC:
        return storage.public_url(file.key)
    return storage.presign_get(object_key=file.key)


def create_pending_upload(
    db: Session,
    *,
    user: User,
    filename: str,
    mime_type: str,
    size: int,
    category: FileCategory,
) -> tuple[File, str]:
    if category == FileCategory.materials and not user.is_staff:
        raise forbidden("Only editors can upload materials")
    validate_upload(category, mime_type, size)

    key = generate_file_key(category, filename)
    upload_url = storage.presign_put(object_key=key, content_type=mime_type)

    row = File(
        key=key,
        original_name=filename,
        mime_type=mime_type,
        size=int(size),
        category=category,
        visibility=FileVisibility.PUBLIC if category == FileCategory.avatars else FileVisibility.PRIVATE,
        uploaded_by_id=user.id,
        confirmed=False,
    )
    db.add(row)
    db.flush()
    return row, upload_url


def _get_file(db: Session, file_id: uuid.UUID) -> File:
    row = db.scalar(select(File).where(File.id == file_id))
    if row is None:
        raise not_found("File not found")
    return row


def _require_owner_or_admin(file: File, user: User) -> None:
    if file.uploaded_by_id != user.id and user.role != UserRole.ADMIN:
        raise forbidden("Not authorized")


def get_readable_file(db: Session, *, file_id: uuid.UUID, user: User) -> File:
    row = _get_file(db, file_id)
    if not row.confirmed:
        raise not_found("File not found")
    if row.visibility == FileVisibility.PRIVATE and row.uploaded_by_id != user.id and not user.is_staff:
        raise forbidden("Not authorized")
    return row


def confirm_upload(db: Session, *, file_id: uuid.UUID, user: User) -> File:
    row = _get_file(db, file_id)
    _require_owner_or_admin(row, user)
    if row.confirmed:
        raise bad_request("File already confirmed")

    row.confirmed = True
    if row.category == FileCategory.avatars and row.uploaded_by_id == user.id:
        user.avatar = storage.public_url(row.key)
    return row


def set_avatar(db: Session, *, file_id: uuid.UUID, user: User) -> File:
    row = db.scalar(select(File).where(File.id == file_id))
    if row is None or row.uploaded_by_id != user.id or row.category != FileCategory.avatars or not row.confirmed:
        raise bad_request("Invalid file", code=ErrorCode.VALIDATION_ERROR)
    user.avatar = storage.public_url(row.key)
    return row


def delete_file(db: Session, *, file_id: uuid.UUID, user: User) -> dict:
    """Deletes the row, then the object. Returns a snapshot of the removed row."""
    row = _get_file(db, file_id)
    _require_owner_or_admin(row, user)
    snapshot = {"id": row.id, "key": row.key, "original_name": row.original_name, "category": row.category.value}

    db.execute(update(Material).where(Material.file_id == row.id).values(file_id=None))
    db.delete(row)
    db.commit()
    try:
        storage.delete_object(object_key=snapshot["key"])
    except Exception:
        # the row is gone already; the object is only orphaned
        log.warning("failed to delete object %s after removing its row", snapshot["key"], exc_info=True)
    return snapshot


def cleanup_unconfirmed(db: Session, *, ttl_hours: int) -> dict:
    cutoff = utcnow() - timedelta(hours=int(ttl_hours))
    rows = db.scalars(select(File).where(File.confirmed.is_(False), File.created_at < cutoff)).all()

    deleted_rows = 0
    deleted_objects = 0
    for row in rows:
        key = row.key
        db.delete(row)
        deleted_rows += 1
        try:
            storage.delete_object(object_key=key)
            deleted_objects += 1
        except Exception:
            log.warning("cleanup: failed to delete object %s", key, exc_info=True)
    db.commit()
    return {"deleted_rows": deleted_rows, "deleted_objects": deleted_objects, "cutoff": cutoff.isoformat()}


def file_dict(file: File, *, with_url: bool = False) -> dict:
    out = {
        "id": str(file.id),
        "key": file.key,
        "original_name": file.original_name,
        "mime_type": file.mime_type,
        "size": int(file.size),
        "category": file.category.value,
        "visibility": file.visibility.value,
        "uploaded_by_id": str(file.uploaded_by_id) if file.uploaded_by_id else None,
        "confirmed": bool(file.confirmed),
        "created_at": file.created_at.isoformat() if file.created_at else None,
    }
    if with_url:
        out["url"] = file_url(file)
    return out


def list_files(db: Session, *, page: int, limit: int, category: FileCategory | None = None) -> dict:
    stmt = select(File)
    if category is not None:
        stmt = stmt.where(File.category == category)
    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(stmt.order_by(File.created_at.desc()).offset((page - 1) * limit).limit(limit)).all()
    return {
        "files": [file_dict(f) for f in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": int(total),
            "total_pages": math.ceil(int(total) / limit) if limit else 0,
        },
    }
