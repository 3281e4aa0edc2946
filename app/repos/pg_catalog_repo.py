"""PostgreSQL implementation of CatalogRepo."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import CourseRow, LearningMaterialRow, LessonRow
from app.models.catalog import CatalogCourse, CatalogLesson, CatalogMaterial


class PgCatalogRepo:
    """Satisfies the CatalogRepo Protocol by reading the catalog tables."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_course(self, course_id: int) -> CatalogCourse | None:
        row = await self._session.get(CourseRow, course_id)
        if row is None:
            return None
        return _row_to_course(row)

    async def get_lesson(self, lesson_id: int) -> CatalogLesson | None:
        row = await self._session.get(LessonRow, lesson_id)
        if row is None:
            return None
        return _row_to_lesson(row)

    async def get_material(self, material_id: int) -> CatalogMaterial | None:
        row = await self._session.get(LearningMaterialRow, material_id)
        if row is None:
            return None
        return _row_to_material(row)

    async def list_published_lessons(self, course_id: int) -> list[CatalogLesson]:
        stmt = (
            select(LessonRow)
            .where(LessonRow.course_id == course_id, LessonRow.is_published.is_(True))
            .order_by(LessonRow.sort_order, LessonRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_lesson(r) for r in rows]

    async def list_published_materials(self, lesson_id: int) -> list[CatalogMaterial]:
        stmt = (
            select(LearningMaterialRow)
            .where(
                LearningMaterialRow.lesson_id == lesson_id,
                LearningMaterialRow.is_published.is_(True),
            )
            .order_by(LearningMaterialRow.sort_order, LearningMaterialRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_material(r) for r in rows]


def _row_to_course(row: CourseRow) -> CatalogCourse:
    return CatalogCourse(id=row.id, title=row.title, is_published=row.is_published)


def _row_to_lesson(row: LessonRow) -> CatalogLesson:
    return CatalogLesson(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        sort_order=row.sort_order,
        is_published=row.is_published,
    )


def _row_to_material(row: LearningMaterialRow) -> CatalogMaterial:
    return CatalogMaterial(
        id=row.id,
        lesson_id=row.lesson_id,
        title=row.title,
        sort_order=row.sort_order,
        is_published=row.is_published,
        allow_manual_progress=row.allow_manual_progress,
    )
