"""initial schema

Revision ID: 0001
Revises: 
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _ts(name: str, *, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def _fk(name: str, target: str, *, nullable: bool = False, ondelete: str | None = None) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


CONTENT_STATUS = ("Draft", "Published")
TOPIC_CATEGORIES = (
    "Programming",
    "Mathematics",
    "Databases",
    "Networks",
    "WebDevelopment",
    "MobileDevelopment",
    "MachineLearning",
    "Security",
    "DevOps",
    "OperatingSystems",
)


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("role", sa.Enum("ADMIN", "EDITOR", "STUDENT", name="userrole"), nullable=False),
        sa.Column("avatar", sa.String(length=1000), nullable=True),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        _ts("last_active_at", nullable=True),
        _ts("deleted_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_deleted_at", "users", ["deleted_at"])

    op.create_table(
        "refresh_tokens",
        _uuid_pk(),
        sa.Column("token", sa.String(length=1024), nullable=False),
        _fk("user_id", "users.id", ondelete="CASCADE"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )
    op.create_index("ix_refresh_tokens_token", "refresh_tokens", ["token"], unique=True)
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])

    for table in ("password_reset_tokens", "email_verification_tokens"):
        op.create_table(
            table,
            _uuid_pk(),
            sa.Column("token", sa.String(length=128), nullable=False),
            _fk("user_id", "users.id", ondelete="CASCADE"),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("created_at"),
        )
        op.create_index(f"ix_{table}_token", table, ["token"], unique=True)
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])

    op.create_table(
        "topics",
        _uuid_pk(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("name_json", sa.JSON(), nullable=True),
        sa.Column("slug", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("desc_json", sa.JSON(), nullable=True),
        sa.Column("category", sa.Enum(*TOPIC_CATEGORIES, name="topiccategory"), nullable=False),
        sa.Column("status", sa.Enum(*CONTENT_STATUS, name="contentstatus"), nullable=False),
        _fk("parent_id", "topics.id", nullable=True, ondelete="SET NULL"),
        _ts("published_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_topics_slug", "topics", ["slug"], unique=True)
    op.create_index("ix_topics_category", "topics", ["category"])
    op.create_index("ix_topics_status", "topics", ["status"])
    op.create_index("ix_topics_parent_id", "topics", ["parent_id"])

    op.create_table(
        "files",
        _uuid_pk(),
        sa.Column("key", sa.String(length=500), nullable=False),
        sa.Column("original_name", sa.String(length=255), nullable=False),
        sa.Column("mime_type", sa.String(length=120), nullable=False),
        sa.Column("size", sa.BigInteger(), nullable=False),
        sa.Column("category", sa.Enum("avatars", "materials", "attachments", name="filecategory"), nullable=False),
        sa.Column("visibility", sa.Enum("PUBLIC", "PRIVATE", name="filevisibility"), nullable=False),
        _fk("uploaded_by_id", "users.id", nullable=True, ondelete="SET NULL"),
        sa.Column("confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_files_key", "files", ["key"], unique=True)
    op.create_index("ix_files_category", "files", ["category"])
    op.create_index("ix_files_uploaded_by_id", "files", ["uploaded_by_id"])
    op.create_index("ix_files_confirmed", "files", ["confirmed"])
    op.create_index("ix_files_created_at", "files", ["created_at"])

    op.create_table(
        "materials",
        _uuid_pk(),
        _fk("topic_id", "topics.id"),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("title_json", sa.JSON(), nullable=True),
        sa.Column("type", sa.Enum("pdf", "video", "link", "text", name="materialtype"), nullable=False),
        sa.Column("url", sa.String(length=2000), nullable=True),
        sa.Column("url_json", sa.JSON(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("content_json", sa.JSON(), nullable=True),
        sa.Column("lang", sa.Enum("UA", "PL", "EN", name="lang"), nullable=False),
        sa.Column("status", postgresql.ENUM(*CONTENT_STATUS, name="contentstatus", create_type=False), nullable=False),
        _ts("published_at", nullable=True),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        _fk("file_id", "files.id", nullable=True, ondelete="SET NULL"),
        _ts("deleted_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_materials_topic_id", "materials", ["topic_id"])
    op.create_index("ix_materials_status", "materials", ["status"])
    op.create_index("ix_materials_deleted_at", "materials", ["deleted_at"])

    op.create_table(
        "quizzes",
        _uuid_pk(),
        _fk("topic_id", "topics.id"),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("title_json", sa.JSON(), nullable=True),
        sa.Column("duration_sec", sa.Integer(), nullable=False, server_default="120"),
        sa.Column("status", postgresql.ENUM(*CONTENT_STATUS, name="contentstatus", create_type=False), nullable=False),
        _ts("published_at", nullable=True),
        _ts("deleted_at", nullable=True),
        _ts("created_at"),
        sa.CheckConstraint("duration_sec BETWEEN 10 AND 3600", name="ck_quizzes_duration_sec"),
    )
    op.create_index("ix_quizzes_topic_id", "quizzes", ["topic_id"])
    op.create_index("ix_quizzes_status", "quizzes", ["status"])
    op.create_index("ix_quizzes_deleted_at", "quizzes", ["deleted_at"])

    op.create_table(
        "questions",
        _uuid_pk(),
        _fk("quiz_id", "quizzes.id"),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("text_json", sa.JSON(), nullable=True),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("explanation_json", sa.JSON(), nullable=True),
        sa.Column("difficulty", sa.Enum("Easy", "Medium", "Hard", name="difficulty"), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False, server_default="[]"),
        _ts("created_at"),
    )
    op.create_index("ix_questions_quiz_id", "questions", ["quiz_id"])

    op.create_table(
        "options",
        _uuid_pk(),
        _fk("question_id", "questions.id"),
        sa.Column("text", sa.String(length=1000), nullable=False),
        sa.Column("text_json", sa.JSON(), nullable=True),
        sa.Column("correct", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_options_question_id", "options", ["question_id"])

    op.create_table(
        "quiz_attempts",
        _uuid_pk(),
        _fk("quiz_id", "quizzes.id"),
        _fk("user_id", "users.id"),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_earned", sa.Integer(), nullable=False, server_default="0"),
        _ts("created_at"),
    )
    op.create_index("ix_quiz_attempts_quiz_id", "quiz_attempts", ["quiz_id"])
    op.create_index("ix_quiz_attempts_user_id", "quiz_attempts", ["user_id"])
    op.create_index("ix_quiz_attempts_created_at", "quiz_attempts", ["created_at"])

    op.create_table(
        "answers",
        _uuid_pk(),
        _fk("attempt_id", "quiz_attempts.id"),
        _fk("user_id", "users.id"),
        _fk("question_id", "questions.id"),
        _fk("option_id", "options.id"),
        sa.Column("is_correct", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
        sa.UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
    )
    for col in ("attempt_id", "user_id", "question_id", "option_id"):
        op.create_index(f"ix_answers_{col}", "answers", [col])

    op.create_table(
        "audit_logs",
        _uuid_pk(),
        _fk("user_id", "users.id", nullable=True, ondelete="SET NULL"),
        sa.Column("action", sa.String(length=40), nullable=False),
        sa.Column("resource", sa.String(length=40), nullable=False),
        sa.Column("resource_id", sa.String(length=100), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=80), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_resource", "audit_logs", ["resource"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])

    op.create_table(
        "material_views",
        _uuid_pk(),
        _fk("user_id", "users.id", ondelete="CASCADE"),
        _fk("material_id", "materials.id", ondelete="CASCADE"),
        sa.Column("time_spent", sa.Integer(), nullable=False, server_default="0"),
        _ts("viewed_at"),
        sa.UniqueConstraint("user_id", "material_id", name="uq_material_view_user_material"),
    )
    op.create_index("ix_material_views_user_id", "material_views", ["user_id"])
    op.create_index("ix_material_views_material_id", "material_views", ["material_id"])
    op.create_index("ix_material_views_viewed_at", "material_views", ["viewed_at"])

    op.create_table(
        "user_activities",
        _uuid_pk(),
        _fk("user_id", "users.id", ondelete="CASCADE"),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quiz_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("materials_viewed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("goals_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("user_id", "date", name="uq_user_activity_user_date"),
    )
    op.create_index("ix_user_activities_user_id", "user_activities", ["user_id"])
    op.create_index("ix_user_activities_date", "user_activities", ["date"])


def downgrade() -> None:
    for table in (
        "user_activities",
        "material_views",
        "audit_logs",
        "answers",
        "quiz_attempts",
        "options",
        "questions",
        "quizzes",
        "materials",
        "files",
        "topics",
        "email_verification_tokens",
        "password_reset_tokens",
        "refresh_tokens",
        "users",
    ):
        op.drop_table(table)
    for enum_name in (
        "difficulty",
        "lang",
        "materialtype",
        "filevisibility",
        "filecategory",
        "contentstatus",
        "topiccategory",
        "userrole",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
