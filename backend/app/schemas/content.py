from __future__ import annotations

import uuid

from pydantic import BaseModel, Field

from app.models.material import Lang, MaterialType
from app.models.quiz import Difficulty
from app.models.topic import ContentStatus


Translations = dict[str, str]


class MaterialCreateRequest(BaseModel):
    title: str = Field(min_length=2, max_length=300)
    title_json: Translations | None = None
    type: MaterialType
    url: str | None = Field(default=None, max_length=2000)
    url_json: Translations | None = None
    content: str | None = None
    content_json: Translations | None = None
    lang: Lang = Lang.EN
    status: ContentStatus | None = None
    publish: bool | None = None
    file_id: uuid.UUID | None = None


class MaterialUpdateRequest(BaseModel):
    """Partial update; also accepts the per-language editor form."""

    title: str | None = Field(default=None, min_length=2, max_length=300)
    title_json: Translations | None = None
    type: MaterialType | None = None
    url: str | None = Field(default=None, max_length=2000)
    url_json: Translations | None = None
    content: str | None = None
    content_json: Translations | None = None
    lang: Lang | None = None
    status: ContentStatus | None = None
    file_id: uuid.UUID | None = None

    title_en: str | None = None
    title_ua: str | None = None
    title_pl: str | None = None
    link_en: str | None = None
    link_ua: str | None = None
    link_pl: str | None = None
    content_en: str | None = None
    content_ua: str | None = None
    content_pl: str | None = None


class PublishRequest(BaseModel):
    published: bool


class QuizCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    title_json: Translations | None = None
    duration_sec: int = Field(default=120, ge=10, le=3600)
    status: ContentStatus = ContentStatus.Draft


class QuizUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=300)
    title_json: Translations | None = None
    duration_sec: int | None = Field(default=None, ge=10, le=3600)
    status: ContentStatus | None = None


class OptionInput(BaseModel):
    text: str = Field(min_length=1, max_length=1000)
    text_json: Translations | None = None
    correct: bool = False


class OptionUpdateRequest(BaseModel):
    text: str | None = Field(default=None, min_length=1, max_length=1000)
    text_json: Translations | None = None
    correct: bool | None = None


class QuestionCreateRequest(BaseModel):
    text: str = Field(min_length=5)
    text_json: Translations | None = None
    explanation: str | None = None
    explanation_json: Translations | None = None
    difficulty: Difficulty = Difficulty.Easy
    tags: list[str] = Field(default_factory=list)
    options: list[OptionInput] = Field(min_length=2, max_length=6)


class QuestionUpdateRequest(BaseModel):
    text: str | None = Field(default=None, min_length=5)
    text_json: Translations | None = None
    explanation: str | None = None
    explanation_json: Translations | None = None
    difficulty: Difficulty | None = None
    tags: list[str] | None = None
    options: list[OptionInput] | None = Field(default=None, min_length=2, max_length=6)
