from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CatalogCourse:
    """Read-only view of a course owned by the catalog service."""

    id: int
    title: str = ""
    is_published: bool = True


@dataclass(frozen=True, slots=True)
class CatalogLesson:
    id: int
    course_id: int
    title: str = ""
    sort_order: int = 0
    is_published: bool = True


@dataclass(frozen=True, slots=True)
class CatalogMaterial:
    id: int
    lesson_id: int
    title: str = ""
    sort_order: int = 0
    is_published: bool = True
    allow_manual_progress: bool = True
