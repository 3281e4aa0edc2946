"""Shared state behind the in-memory repositories.

All in-memory repos of one unit of work read and write the same
InMemoryDatabase.  Values are frozen dataclasses, so a snapshot only has
to copy the containers; InMemoryUnitOfWork restores it on rollback.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date

from app.models.activity import DailyActivity, LearningSession, StreakState
from app.models.catalog import CatalogCourse, CatalogLesson, CatalogMaterial
from app.models.progress import HistoryEntry, LeafProgress
from app.models.summary import CourseSummary, LessonSummary


@dataclass
class _Tables:
    courses: dict[int, CatalogCourse] = field(default_factory=dict)
    lessons: dict[int, CatalogLesson] = field(default_factory=dict)
    materials: dict[int, CatalogMaterial] = field(default_factory=dict)
    progress: dict[tuple[str, int | None], LeafProgress] = field(default_factory=dict)
    history: list[HistoryEntry] = field(default_factory=list)
    lesson_summaries: dict[tuple[str, int], LessonSummary] = field(
        default_factory=dict
    )
    course_summaries: dict[tuple[str, int], CourseSummary] = field(
        default_factory=dict
    )
    streaks: dict[str, StreakState] = field(default_factory=dict)
    daily_activity: dict[tuple[str, date], DailyActivity] = field(
        default_factory=dict
    )
    sessions: list[LearningSession] = field(default_factory=list)
    sequences: dict[str, int] = field(default_factory=dict)

    def copy(self) -> _Tables:
        return _Tables(
            courses=dict(self.courses),
            lessons=dict(self.lessons),
            materials=dict(self.materials),
            progress=dict(self.progress),
            history=list(self.history),
            lesson_summaries=dict(self.lesson_summaries),
            course_summaries=dict(self.course_summaries),
            streaks=dict(self.streaks),
            daily_activity=dict(self.daily_activity),
            sessions=list(self.sessions),
            sequences=dict(self.sequences),
        )


class InMemoryDatabase:
    """Process-local stand-in for PostgreSQL.

    One asyncio.Lock guards the whole database, so units of work run one
    at a time (serializable).  Catalog tables are included because the
    in-memory catalog plays the external catalog service in dev and tests.
    """

    def __init__(self) -> None:
        self.tables = _Tables()
        self.lock = asyncio.Lock()

    def next_id(self, sequence: str) -> int:
        value = self.tables.sequences.get(sequence, 0) + 1
        self.tables.sequences[sequence] = value
        return value

    def snapshot(self) -> _Tables:
        return self.tables.copy()

    def restore(self, snapshot: _Tables) -> None:
        self.tables = snapshot

    def reset(self) -> None:
        """Drop all data (tests).  Also replaces the lock, which may be
        bound to an event loop that no longer exists."""
        self.tables = _Tables()
        self.lock = asyncio.Lock()
