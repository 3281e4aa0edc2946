"""PostgreSQL implementation of SummaryRepo."""

from __future__ import annotations

import hashlib

from sqlalchemy import BigInteger, func, literal, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import CourseProgressSummaryRow, LessonProgressSummaryRow
from app.models.summary import CourseSummary, LessonSummary


class PgSummaryRepo:
    """Summaries are upserted whole; a recompute replaces the previous row.

    lock_lesson and lock_course take a transaction-scoped advisory lock on
    the summary a writer is about to recompute. Taking it before reading
    the leaves means the last writer to commit also read last, so the
    stored row never reflects an older set of leaves.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def lock_lesson(self, user_id: str, lesson_id: int) -> None:
        await self._lock(_summary_lock_id("lesson", user_id, lesson_id))

    async def lock_course(self, user_id: str, course_id: int) -> None:
        await self._lock(_summary_lock_id("course", user_id, course_id))

    async def _lock(self, lock_id: int) -> None:
        await self._session.execute(
            select(func.pg_advisory_xact_lock(literal(lock_id, BigInteger)))
        )

    async def get_lesson(self, user_id: str, lesson_id: int) -> LessonSummary | None:
        stmt = select(LessonProgressSummaryRow).where(
            LessonProgressSummaryRow.user_id == user_id,
            LessonProgressSummaryRow.lesson_id == lesson_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return LessonSummary(
            user_id=row.user_id,
            lesson_id=row.lesson_id,
            aggregate_progress_rate=row.aggregate_progress_rate,
            completed_material_count=row.completed_material_count,
            total_material_count=row.total_material_count,
        )

    async def save_lesson(self, summary: LessonSummary) -> LessonSummary:
        values = {
            "aggregate_progress_rate": summary.aggregate_progress_rate,
            "completed_material_count": summary.completed_material_count,
            "total_material_count": summary.total_material_count,
        }
        stmt = (
            insert(LessonProgressSummaryRow)
            .values(user_id=summary.user_id, lesson_id=summary.lesson_id, **values)
            .on_conflict_do_update(
                index_elements=["user_id", "lesson_id"], set_=values
            )
        )
        await self._session.execute(stmt)
        return summary

    async def get_course(self, user_id: str, course_id: int) -> CourseSummary | None:
        stmt = select(CourseProgressSummaryRow).where(
            CourseProgressSummaryRow.user_id == user_id,
            CourseProgressSummaryRow.course_id == course_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return CourseSummary(
            user_id=row.user_id,
            course_id=row.course_id,
            aggregate_progress_rate=row.aggregate_progress_rate,
            completed_lesson_count=row.completed_lesson_count,
            total_lesson_count=row.total_lesson_count,
        )

    async def save_course(self, summary: CourseSummary) -> CourseSummary:
        values = {
            "aggregate_progress_rate": summary.aggregate_progress_rate,
            "completed_lesson_count": summary.completed_lesson_count,
            "total_lesson_count": summary.total_lesson_count,
        }
        stmt = (
            insert(CourseProgressSummaryRow)
            .values(user_id=summary.user_id, course_id=summary.course_id, **values)
            .on_conflict_do_update(
                index_elements=["user_id", "course_id"], set_=values
            )
        )
        await self._session.execute(stmt)
        return summary


def _summary_lock_id(level: str, user_id: str, entity_id: int) -> int:
    digest = hashlib.sha256(f"{level}\0{user_id}\0{entity_id}".encode()).digest()
    return int.from_bytes(digest[:8], "big", signed=True)
