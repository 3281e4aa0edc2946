"""create progress tables

Revision ID: 3b9d2c71e0a4
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9d2c71e0a4"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Catalog tables are owned by the catalog service; created here only
    # when this service runs against its own database.
    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        if_not_exists=True,
    )
    op.create_table(
        "lessons",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "course_id",
            sa.Integer(),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        if_not_exists=True,
    )
    op.create_index(
        "ix_lessons_course_id", "lessons", ["course_id"], if_not_exists=True
    )
    op.create_table(
        "learning_materials",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "lesson_id",
            sa.Integer(),
            sa.ForeignKey("lessons.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "allow_manual_progress",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        if_not_exists=True,
    )
    op.create_index(
        "ix_learning_materials_lesson_id",
        "learning_materials",
        ["lesson_id"],
        if_not_exists=True,
    )

    op.create_table(
        "user_progress",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=True),
        sa.Column("lesson_id", sa.Integer(), nullable=True),
        sa.Column(
            "material_id",
            sa.Integer(),
            sa.ForeignKey("learning_materials.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("progress_kind", sa.String(length=16), nullable=False),
        sa.Column("progress_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("manual_progress_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("spent_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completion_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("note", sa.String(length=1000), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("last_updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "material_id", name="uq_user_progress_material"),
        sa.CheckConstraint(
            "progress_rate >= 0 AND progress_rate <= 100",
            name="ck_user_progress_rate_range",
        ),
        sa.CheckConstraint(
            "spent_minutes >= 0", name="ck_user_progress_minutes_nonnegative"
        ),
    )
    op.create_index("ix_user_progress_course_id", "user_progress", ["course_id"])
    op.create_index("ix_user_progress_lesson_id", "user_progress", ["lesson_id"])

    op.create_table(
        "progress_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "progress_id",
            sa.Integer(),
            sa.ForeignKey("user_progress.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("progress_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("spent_minutes", sa.Integer(), nullable=False),
        sa.Column("minutes_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("changed_by", sa.String(length=255), nullable=False),
        sa.Column(
            "became_completed", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("note", sa.String(length=1000), nullable=True),
        sa.Column("idempotency_key", sa.String(length=255), nullable=True),
        sa.Column("request_fingerprint", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_progress_history_progress_id", "progress_history", ["progress_id"]
    )
    op.create_index("ix_progress_history_created_at", "progress_history", ["created_at"])
    op.create_index(
        "ix_progress_history_idempotency",
        "progress_history",
        ["changed_by", "idempotency_key"],
    )

    op.create_table(
        "lesson_progress_summaries",
        sa.Column("user_id", sa.String(length=255), primary_key=True),
        sa.Column("lesson_id", sa.Integer(), primary_key=True),
        sa.Column("aggregate_progress_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("completed_material_count", sa.Integer(), nullable=False),
        sa.Column("total_material_count", sa.Integer(), nullable=False),
    )
    op.create_table(
        "course_progress_summaries",
        sa.Column("user_id", sa.String(length=255), primary_key=True),
        sa.Column("course_id", sa.Integer(), primary_key=True),
        sa.Column("aggregate_progress_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("completed_lesson_count", sa.Integer(), nullable=False),
        sa.Column("total_lesson_count", sa.Integer(), nullable=False),
    )

    op.create_table(
        "learning_streaks",
        sa.Column("user_id", sa.String(length=255), primary_key=True),
        sa.Column("current_streak_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_active_date", sa.Date(), nullable=True),
    )
    op.create_table(
        "daily_learning_activity",
        sa.Column("user_id", sa.String(length=255), primary_key=True),
        sa.Column("activity_date", sa.Date(), primary_key=True),
        sa.Column("spent_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("session_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("update_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_table(
        "learning_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column(
            "material_id",
            sa.Integer(),
            sa.ForeignKey("learning_materials.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("minutes", sa.Integer(), nullable=False),
    )
    op.create_index("ix_learning_sessions_user_id", "learning_sessions", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_learning_sessions_user_id", table_name="learning_sessions")
    op.drop_table("learning_sessions")
    op.drop_table("daily_learning_activity")
    op.drop_table("learning_streaks")
    op.drop_table("course_progress_summaries")
    op.drop_table("lesson_progress_summaries")
    op.drop_index("ix_progress_history_idempotency", table_name="progress_history")
    op.drop_index("ix_progress_history_created_at", table_name="progress_history")
    op.drop_index("ix_progress_history_progress_id", table_name="progress_history")
    op.drop_table("progress_history")
    op.drop_index("ix_user_progress_lesson_id", table_name="user_progress")
    op.drop_index("ix_user_progress_course_id", table_name="user_progress")
    op.drop_table("user_progress")
    # Catalog tables are left in place; they may belong to the catalog service.
