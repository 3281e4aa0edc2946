from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class LessonSummary:
    """Derived roll-up of a learner's leaf progress under one lesson.

    Deliberately carries no timestamp: recomputing with unchanged leaves
    must produce an identical value.
    """

    user_id: str
    lesson_id: int
    aggregate_progress_rate: Decimal
    completed_material_count: int
    total_material_count: int


@dataclass(frozen=True, slots=True)
class CourseSummary:
    user_id: str
    course_id: int
    aggregate_progress_rate: Decimal
    completed_lesson_count: int
    total_lesson_count: int
