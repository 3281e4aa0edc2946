from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

RATE_PLACES = Decimal("0.01")
MIN_RATE = Decimal("0")
MAX_RATE = Decimal("100")


def quantize_rate(value: Decimal) -> Decimal:
    """Round a percentage to the stored 2-decimal precision, half up."""
    return value.quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


class ProgressKind(str, enum.Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


@dataclass(frozen=True, slots=True)
class LeafProgress:
    """One learner's progress on one material; the source of truth.

    Mutated only through ProgressStore.upsert; lesson and course summaries
    are always re-derived from these rows.
    """

    id: int
    user_id: str
    course_id: int | None  # None when the material's lesson is orphaned
    lesson_id: int | None
    material_id: int | None  # None only for course-level enrollment records
    progress_kind: ProgressKind
    progress_rate: Decimal
    spent_minutes: int
    is_completed: bool
    last_updated_at: datetime
    manual_progress_rate: Decimal | None = None
    completion_date: datetime | None = None
    note: str | None = None


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """Immutable audit snapshot written once per accepted leaf write."""

    id: int
    progress_id: int
    progress_rate: Decimal
    spent_minutes: int  # cumulative, as stored on the leaf after the write
    minutes_delta: int  # minutes added by this write
    changed_by: str
    created_at: datetime
    became_completed: bool = False
    note: str | None = None
    idempotency_key: str | None = None
    request_fingerprint: str | None = None


@dataclass(frozen=True, slots=True)
class LeafProgressFilter:
    """Narrows a learner's leaf listing; None means "any"."""

    course_id: int | None = None
    lesson_id: int | None = None
    is_completed: bool | None = None

    def matches(self, leaf: LeafProgress) -> bool:
        if self.course_id is not None and leaf.course_id != self.course_id:
            return False
        if self.lesson_id is not None and leaf.lesson_id != self.lesson_id:
            return False
        if self.is_completed is not None and leaf.is_completed != self.is_completed:
            return False
        return True
