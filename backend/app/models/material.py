import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, SoftDeleteMixin, utcnow
from app.models.topic import ContentStatus


class MaterialType(str, enum.Enum):
    pdf = "pdf"
    video = "video"
    link = "link"
    text = "text"


class Lang(str, enum.Enum):
    UA = "UA"
    PL = "PL"
    EN = "EN"


class Material(SoftDeleteMixin, Base):
    __tablename__ = "materials"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    topic_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("topics.id"), index=True)

    title: Mapped[str] = mapped_column(String(300))
    title_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    type: Mapped[MaterialType] = mapped_column(Enum(MaterialType))
    url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    url_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    lang: Mapped[Lang] = mapped_column(Enum(Lang), default=Lang.EN)

    status: Mapped[ContentStatus] = mapped_column(Enum(ContentStatus), default=ContentStatus.Draft, index=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    views: Mapped[int] = mapped_column(Integer, default=0)

    file_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("files.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
