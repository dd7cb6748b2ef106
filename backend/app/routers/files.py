from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.rate_limit import rate_limit
from app.core.security import get_current_user, require_admin
from app.db.session import get_db
from app.models.file import FileCategory
from app.models.user import User
from app.schemas.files import ConfirmUploadRequest, PresignUploadRequest, PresignUploadResponse
from app.services import files as file_service
from app.services import storage
from app.services.audit import AuditAction, AuditResource, audit_log

router = APIRouter(prefix="/files", tags=["files"])


@router.post("/presign-upload", response_model=PresignUploadResponse)
def presign_upload(
    payload: PresignUploadRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    _: object = rate_limit(key_prefix="files_presign", limit=30, window_seconds=60),
):
    row, upload_url = file_service.create_pending_upload(
        db,
        user=user,
        filename=payload.filename,
        mime_type=payload.mime_type,
        size=payload.size,
        category=payload.category,
    )
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.UPLOAD,
        resource=AuditResource.FILE,
        resource_id=row.id,
        metadata={"filename": payload.filename, "mime_type": payload.mime_type, "size": payload.size},
    )
    db.commit()
    return {
        "file_id": str(row.id),
        "upload_url": upload_url,
        "key": row.key,
        "expires_in": int(settings.s3_presign_upload_expires_seconds),
    }


@router.post("/confirm")
def confirm(
    payload: ConfirmUploadRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    row = file_service.confirm_upload(db, file_id=payload.file_id, user=user)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.UPDATE,
        resource=AuditResource.FILE,
        resource_id=row.id,
        metadata={"confirmed": True},
    )
    db.commit()
    db.refresh(row)
    return file_service.file_dict(row, with_url=True)


@router.get("")
def list_files(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    category: FileCategory | None = None,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
):
    return file_service.list_files(db, page=page, limit=limit, category=category)


@router.get("/{file_id}")
def get_file(file_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    row = file_service.get_readable_file(db, file_id=file_id, user=user)
    return file_service.file_dict(row, with_url=True)


@router.get("/{file_id}/download")
def download(
    file_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    row = file_service.get_readable_file(db, file_id=file_id, user=user)
    url = storage.presign_get(object_key=row.key, expires_seconds=file_service.DOWNLOAD_URL_TTL_SECONDS)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.DOWNLOAD,
        resource=AuditResource.FILE,
        resource_id=row.id,
    )
    db.commit()
    return {"url": url, "expires_in": file_service.DOWNLOAD_URL_TTL_SECONDS}


@router.delete("/{file_id}")
def delete(
    file_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    removed = file_service.delete_file(db, file_id=file_id, user=user)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.DELETE,
        resource=AuditResource.FILE,
        resource_id=removed["id"],
        metadata={"key": removed["key"], "original_name": removed["original_name"]},
    )
    db.commit()
    return {"ok": True}
