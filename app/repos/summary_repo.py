from __future__ import annotations

from typing import Protocol

from app.models.summary import CourseSummary, LessonSummary
from app.repos.memory import InMemoryDatabase


class SummaryRepo(Protocol):
    async def lock_lesson(self, user_id: str, lesson_id: int) -> None: ...
    async def lock_course(self, user_id: str, course_id: int) -> None: ...
    async def get_lesson(self, user_id: str, lesson_id: int) -> LessonSummary | None: ...
    async def save_lesson(self, summary: LessonSummary) -> LessonSummary: ...
    async def get_course(self, user_id: str, course_id: int) -> CourseSummary | None: ...
    async def save_course(self, summary: CourseSummary) -> CourseSummary: ...


class InMemorySummaryRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    # the unit of work already holds the database lock
    async def lock_lesson(self, user_id: str, lesson_id: int) -> None:
        return None

    async def lock_course(self, user_id: str, course_id: int) -> None:
        return None

    async def get_lesson(self, user_id: str, lesson_id: int) -> LessonSummary | None:
        return self._db.tables.lesson_summaries.get((user_id, lesson_id))

    async def save_lesson(self, summary: LessonSummary) -> LessonSummary:
        self._db.tables.lesson_summaries[(summary.user_id, summary.lesson_id)] = summary
        return summary

    async def get_course(self, user_id: str, course_id: int) -> CourseSummary | None:
        return self._db.tables.course_summaries.get((user_id, course_id))

    async def save_course(self, summary: CourseSummary) -> CourseSummary:
        self._db.tables.course_summaries[(summary.user_id, summary.course_id)] = summary
        return summary
