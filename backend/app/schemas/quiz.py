from __future__ import annotations

import uuid

from pydantic import BaseModel, Field


class QuizOptionPublic(BaseModel):
    id: str
    text: str


class QuizQuestionPublic(BaseModel):
    id: str
    text: str
    explanation: str | None = None
    difficulty: str
    tags: list[str]
    options: list[QuizOptionPublic]


class QuizStartResponse(BaseModel):
    id: str
    title: str
    duration_sec: int
    topic_id: str
    status: str
    token: str
    questions: list[QuizQuestionPublic]


class QuizSubmitAnswer(BaseModel):
    question_id: uuid.UUID
    option_id: uuid.UUID | None = None


class QuizSubmitRequest(BaseModel):
    token: str = Field(min_length=1)
    answers: list[QuizSubmitAnswer]
    lang: str | None = None


class QuizSubmitResponse(BaseModel):
    attempt_id: str
    correct: int
    total: int
    score: int
    passed: bool
    xp_earned: int
    correct_map: dict[str, str]
    solutions: dict[str, str]
