from __future__ import annotations

from typing import Protocol

from app.models.catalog import CatalogCourse, CatalogLesson, CatalogMaterial
from app.repos.memory import InMemoryDatabase


class CatalogRepo(Protocol):
    """Read-only queries into the course catalog.

    The catalog is owned by another service; the engine never writes it.
    Within one unit of work the answers form a consistent snapshot.
    """

    async def get_course(self, course_id: int) -> CatalogCourse | None: ...
    async def get_lesson(self, lesson_id: int) -> CatalogLesson | None: ...
    async def get_material(self, material_id: int) -> CatalogMaterial | None: ...
    async def list_published_lessons(self, course_id: int) -> list[CatalogLesson]: ...
    async def list_published_materials(
        self, lesson_id: int
    ) -> list[CatalogMaterial]: ...


class InMemoryCatalogRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def get_course(self, course_id: int) -> CatalogCourse | None:
        return self._db.tables.courses.get(course_id)

    async def get_lesson(self, lesson_id: int) -> CatalogLesson | None:
        return self._db.tables.lessons.get(lesson_id)

    async def get_material(self, material_id: int) -> CatalogMaterial | None:
        return self._db.tables.materials.get(material_id)

    async def list_published_lessons(self, course_id: int) -> list[CatalogLesson]:
        lessons = [
            lesson
            for lesson in self._db.tables.lessons.values()
            if lesson.course_id == course_id and lesson.is_published
        ]
        return sorted(lessons, key=lambda lesson: (lesson.sort_order, lesson.id))

    async def list_published_materials(self, lesson_id: int) -> list[CatalogMaterial]:
        materials = [
            m
            for m in self._db.tables.materials.values()
            if m.lesson_id == lesson_id and m.is_published
        ]
        return sorted(materials, key=lambda m: (m.sort_order, m.id))


# ---------------------------------------------------------------------------
# Catalog fixtures for the in-memory backend
# ---------------------------------------------------------------------------
# In production the catalog tables are filled by the catalog service.  These
# helpers stand in for it in dev and tests.


def add_course(db: InMemoryDatabase, course: CatalogCourse) -> CatalogCourse:
    db.tables.courses[course.id] = course
    return course


def add_lesson(db: InMemoryDatabase, lesson: CatalogLesson) -> CatalogLesson:
    db.tables.lessons[lesson.id] = lesson
    return lesson


def add_material(db: InMemoryDatabase, material: CatalogMaterial) -> CatalogMaterial:
    db.tables.materials[material.id] = material
    return material


def seed_sample_catalog(db: InMemoryDatabase) -> None:
    """Seed one course with two lessons for local development."""
    if db.tables.courses:
        return
    add_course(db, CatalogCourse(id=1, title="Introduction to Statistics"))
    add_lesson(db, CatalogLesson(id=1, course_id=1, title="Descriptive", sort_order=1))
    add_lesson(db, CatalogLesson(id=2, course_id=1, title="Inference", sort_order=2))
    add_material(db, CatalogMaterial(id=1, lesson_id=1, title="Mean and median"))
    add_material(db, CatalogMaterial(id=2, lesson_id=1, title="Variance", sort_order=1))
    add_material(
        db,
        CatalogMaterial(
            id=3,
            lesson_id=2,
            title="Lecture video",
            allow_manual_progress=False,
        ),
    )
    add_material(db, CatalogMaterial(id=4, lesson_id=2, title="Reading", sort_order=1))
