from __future__ import annotations

import uuid

from pydantic import BaseModel, Field

from app.models.topic import ContentStatus, TopicCategory


SLUG_PATTERN = r"^[a-z0-9-]+$"


class TopicCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    name_json: dict[str, str] | None = None
    slug: str = Field(pattern=SLUG_PATTERN, max_length=200)
    description: str = ""
    desc_json: dict[str, str] | None = None
    category: TopicCategory = TopicCategory.Programming
    status: ContentStatus = ContentStatus.Draft
    parent_id: uuid.UUID | None = None


class TopicUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    name_json: dict[str, str] | None = None
    slug: str | None = Field(default=None, pattern=SLUG_PATTERN, max_length=200)
    description: str | None = None
    desc_json: dict[str, str] | None = None
    category: TopicCategory | None = None
    status: ContentStatus | None = None
    parent_id: uuid.UUID | None = None
