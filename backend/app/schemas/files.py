from __future__ import annotations

import uuid

from pydantic import BaseModel, Field

from app.models.file import FileCategory


MAX_PRESIGN_SIZE = 500 * 1024 * 1024


class PresignUploadRequest(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    mime_type: str = Field(min_length=1, max_length=120)
    size: int = Field(gt=0, le=MAX_PRESIGN_SIZE)
    category: FileCategory = FileCategory.attachments


class PresignUploadResponse(BaseModel):
    file_id: str
    upload_url: str
    key: str
    expires_in: int


class ConfirmUploadRequest(BaseModel):
    file_id: uuid.UUID
