"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in app/models/.
Repos convert between SQLAlchemy rows and domain dataclasses.

The catalog tables (courses, lessons, learning_materials) belong to the
catalog service and are only read here.  They are declared so foreign
keys and cascades line up and so alembic can build a complete schema for
local development.
"""

from __future__ import annotations

import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.engine import Base

# --- Catalog (read-only for this service) ---


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class LessonRow(Base):
    __tablename__ = "lessons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class LearningMaterialRow(Base):
    __tablename__ = "learning_materials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lesson_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allow_manual_progress: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )


# --- Leaf progress + audit trail ---


class UserProgressRow(Base):
    __tablename__ = "user_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    course_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    lesson_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    material_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("learning_materials.id", ondelete="CASCADE"),
        nullable=True,
    )
    progress_kind: Mapped[str] = mapped_column(
        String(16), nullable=False, default="manual"
    )  # automatic|manual
    progress_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0.00")
    )
    manual_progress_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2), nullable=True
    )
    spent_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completion_date: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    last_updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "material_id", name="uq_user_progress_material"),
        CheckConstraint(
            "progress_rate >= 0 AND progress_rate <= 100",
            name="ck_user_progress_rate_range",
        ),
        CheckConstraint(
            "spent_minutes >= 0", name="ck_user_progress_minutes_nonnegative"
        ),
    )


class ProgressHistoryRow(Base):
    __tablename__ = "progress_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    progress_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_progress.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    progress_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    spent_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    minutes_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    changed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    became_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    request_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    __table_args__ = (
        Index("ix_progress_history_idempotency", "changed_by", "idempotency_key"),
    )


# --- Derived summaries (recomputed, never patched) ---


class LessonProgressSummaryRow(Base):
    __tablename__ = "lesson_progress_summaries"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    lesson_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    aggregate_progress_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False
    )
    completed_material_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_material_count: Mapped[int] = mapped_column(Integer, nullable=False)


class CourseProgressSummaryRow(Base):
    __tablename__ = "course_progress_summaries"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    course_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    aggregate_progress_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False
    )
    completed_lesson_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_lesson_count: Mapped[int] = mapped_column(Integer, nullable=False)


# --- Activity analytics ---


class LearningStreakRow(Base):
    __tablename__ = "learning_streaks"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    current_streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_active_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)


class DailyLearningActivityRow(Base):
    __tablename__ = "daily_learning_activity"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    activity_date: Mapped[datetime.date] = mapped_column(Date, primary_key=True)
    spent_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    session_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    update_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class LearningSessionRow(Base):
    __tablename__ = "learning_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    material_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("learning_materials.id", ondelete="SET NULL"),
        nullable=True,
    )
    started_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    ended_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    minutes: Mapped[int] = mapped_column(Integer, nullable=False)
