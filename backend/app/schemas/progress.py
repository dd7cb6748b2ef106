from __future__ import annotations

import uuid
from datetime import date as date_type

from pydantic import AliasChoices, BaseModel, Field


class MarkViewedRequest(BaseModel):
    material_id: uuid.UUID
    time_spent: int | None = Field(default=None, ge=0)


class SyncViewedRequest(BaseModel):
    material_ids: list[uuid.UUID]


class ActivityRequest(BaseModel):
    time_spent: int | None = Field(default=None, ge=0)
    quiz_attempt: bool | None = None
    goal_completed: bool | None = None


class StreakResponse(BaseModel):
    current: int
    longest: int
    last_active_date: str | None


class OfflineActivity(BaseModel):
    date: date_type
    time_spent: int = Field(default=0, ge=0)
    quiz_attempts: int = Field(default=0, ge=0)
    materials_viewed: int = Field(default=0, ge=0)
    goals_completed: int = Field(default=0, ge=0, validation_alias=AliasChoices("goals_completed", "goals_met"))


class PushRequest(BaseModel):
    seen_materials: list[uuid.UUID] = Field(default_factory=list, max_length=1000)
    activity: list[OfflineActivity] = Field(default_factory=list, max_length=366)
