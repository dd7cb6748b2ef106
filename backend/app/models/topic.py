import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, utcnow


class ContentStatus(str, enum.Enum):
    Draft = "Draft"
    Published = "Published"


class TopicCategory(str, enum.Enum):
    Programming = "Programming"
    Mathematics = "Mathematics"
    Databases = "Databases"
    Networks = "Networks"
    WebDevelopment = "WebDevelopment"
    MobileDevelopment = "MobileDevelopment"
    MachineLearning = "MachineLearning"
    Security = "Security"
    DevOps = "DevOps"
    OperatingSystems = "OperatingSystems"


class Topic(Base):
    __tablename__ = "topics"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200))
    name_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    slug: Mapped[str] = mapped_column(String(200), unique=True, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    desc_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    category: Mapped[TopicCategory] = mapped_column(Enum(TopicCategory), default=TopicCategory.Programming, index=True)
    status: Mapped[ContentStatus] = mapped_column(Enum(ContentStatus), default=ContentStatus.Draft, index=True)

    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("topics.id", ondelete="SET NULL"), nullable=True, index=True
    )

    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
