"""Lesson and course roll-ups.

Summaries are always recomputed from the current leaf rows and replaced
whole.  Nothing is patched incrementally, so a recompute that raced with
a sibling write is corrected by the next write under that lesson.

  lesson rate = mean(progress_rate) over the lesson's published
                materials; a material without a leaf row counts as 0
  course rate = mean(lesson rate) over published lessons that have at
                least one published material; empty lessons are left
                out of the denominator

Both means are rounded half up to 2 decimals.  A parent with no
children gets rate 0.00 and count 0.
"""

from __future__ import annotations

from decimal import Decimal

from app.models.progress import quantize_rate
from app.models.summary import CourseSummary, LessonSummary
from app.repos.unit_of_work import UnitOfWork
from app.services.errors import ConsistencyError

_ZERO = Decimal("0")


def mean_rate(rates: list[Decimal]) -> Decimal:
    if not rates:
        return quantize_rate(_ZERO)
    return quantize_rate(sum(rates, _ZERO) / len(rates))


class AggregationEngine:
    async def recompute_lesson(
        self, uow: UnitOfWork, user_id: str, lesson_id: int | None
    ) -> LessonSummary:
        """Recompute and persist one lesson summary.

        The summary is locked before its leaves are read, so concurrent
        writers under one lesson recompute one after another.

        Raises ConsistencyError if the lesson is missing from the catalog.
        """
        lesson = None
        if lesson_id is not None:
            lesson = await uow.catalog.get_lesson(lesson_id)
        if lesson is None:
            raise ConsistencyError(
                "lesson", lesson_id or 0, f"lesson {lesson_id} not found in catalog"
            )
        await uow.summaries.lock_lesson(user_id, lesson.id)
        summary = await self.compute_lesson(uow, user_id, lesson.id)
        return await uow.summaries.save_lesson(summary)

    async def recompute_course(
        self, uow: UnitOfWork, user_id: str, course_id: int | None
    ) -> CourseSummary:
        """Recompute and persist the course summary.

        Only the course row is written.  Sibling lesson rows are left to
        their own writes so that two submissions under different lessons
        of one course never lock each other's lesson rows.

        Raises ConsistencyError if the course is missing from the catalog.
        """
        course = None
        if course_id is not None:
            course = await uow.catalog.get_course(course_id)
        if course is None:
            raise ConsistencyError(
                "course", course_id or 0, f"course {course_id} not found in catalog"
            )
        await uow.summaries.lock_course(user_id, course.id)
        summary, _ = await self.compute_course(uow, user_id, course.id)
        return await uow.summaries.save_course(summary)

    async def compute_lesson(
        self, uow: UnitOfWork, user_id: str, lesson_id: int
    ) -> LessonSummary:
        materials = await uow.catalog.list_published_materials(lesson_id)
        leaves = await uow.progress.list_for_materials(
            user_id, [m.id for m in materials]
        )
        rates: list[Decimal] = []
        completed = 0
        for material in materials:
            leaf = leaves.get(material.id)
            if leaf is None:
                rates.append(_ZERO)
                continue
            rates.append(leaf.progress_rate)
            if leaf.is_completed:
                completed += 1
        return LessonSummary(
            user_id=user_id,
            lesson_id=lesson_id,
            aggregate_progress_rate=mean_rate(rates),
            completed_material_count=completed,
            total_material_count=len(materials),
        )

    async def compute_course(
        self, uow: UnitOfWork, user_id: str, course_id: int
    ) -> tuple[CourseSummary, list[LessonSummary]]:
        """Course summary plus the lesson summaries it was built from.

        Each lesson is recomputed from its leaves rather than read back
        from storage, so the course figure cannot lag behind a lesson.
        """
        lessons: list[LessonSummary] = []
        for lesson in await uow.catalog.list_published_lessons(course_id):
            lessons.append(await self.compute_lesson(uow, user_id, lesson.id))

        counted = [s for s in lessons if s.total_material_count > 0]
        completed = sum(
            1
            for s in counted
            if s.completed_material_count == s.total_material_count
        )
        summary = CourseSummary(
            user_id=user_id,
            course_id=course_id,
            aggregate_progress_rate=mean_rate(
                [s.aggregate_progress_rate for s in counted]
            ),
            completed_lesson_count=completed,
            total_lesson_count=len(counted),
        )
        return summary, lessons
