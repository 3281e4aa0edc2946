"""Leaf progress writes.

ProgressStore.upsert is the only code path that mutates a LeafProgress.
Every check runs before the first write, so a rejected call leaves no
trace in storage.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from numbers import Number

from app.models.catalog import CatalogMaterial
from app.models.progress import (
    MAX_RATE,
    MIN_RATE,
    LeafProgress,
    LeafProgressFilter,
    ProgressKind,
    quantize_rate,
)
from app.repos.unit_of_work import UnitOfWork
from app.services.completion import CompletionPolicy, CompletionState, apply_completion
from app.services.errors import (
    NotFoundReason,
    ProgressNotFoundError,
    ProgressValidationError,
    ValidationReason,
)
from app.services.history import check_page

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 1000


@dataclass(frozen=True, slots=True)
class ProgressSubmission:
    """A manual progress write that passed the field checks."""

    progress_rate: Decimal
    spent_minutes: int | None = None
    note: str | None = None


@dataclass(frozen=True, slots=True)
class StoredProgress:
    previous: LeafProgress | None
    current: LeafProgress
    completion: CompletionState
    minutes_delta: int


def _to_decimal(value: object) -> Decimal:
    if isinstance(value, bool):
        raise ProgressValidationError(
            ValidationReason.OUT_OF_RANGE, "progress_rate must be a number"
        )
    if isinstance(value, float) and not math.isfinite(value):
        raise ProgressValidationError(
            ValidationReason.OUT_OF_RANGE,
            "progress_rate must be between 0 and 100",
        )
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (Number, str)):
        try:
            # str() keeps 0.1 as 0.1 instead of its binary expansion
            return Decimal(str(value))
        except InvalidOperation:
            pass
    raise ProgressValidationError(
        ValidationReason.OUT_OF_RANGE, "progress_rate must be a number"
    )


def validate_rate(value: object) -> Decimal:
    rate = _to_decimal(value)
    if not rate.is_finite() or rate < MIN_RATE or rate > MAX_RATE:
        raise ProgressValidationError(
            ValidationReason.OUT_OF_RANGE,
            f"progress_rate must be between 0 and 100 (got {value})",
        )
    # Rounding happens after the range check: 100.004 is rejected, not 100.00
    return quantize_rate(rate)


def validate_minutes(value: object) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ProgressValidationError(
            ValidationReason.NOT_INTEGER, "spent_minutes must be an integer"
        )
    if isinstance(value, int):
        minutes = value
    elif (
        isinstance(value, (float, Decimal))
        and math.isfinite(value)
        and value == int(value)
    ):
        minutes = int(value)
    else:
        raise ProgressValidationError(
            ValidationReason.NOT_INTEGER,
            f"spent_minutes must be a whole number of minutes (got {value})",
        )
    if minutes < 0:
        raise ProgressValidationError(
            ValidationReason.OUT_OF_RANGE,
            f"spent_minutes must be >= 0 (got {minutes})",
        )
    return minutes


def validate_submission(
    progress_rate: object,
    spent_minutes: object = None,
    note: str | None = None,
) -> ProgressSubmission:
    rate = validate_rate(progress_rate)
    minutes = validate_minutes(spent_minutes)
    if note is not None and len(note) > MAX_NOTE_LENGTH:
        raise ProgressValidationError(
            ValidationReason.NOTE_TOO_LONG,
            f"note must be at most {MAX_NOTE_LENGTH} characters (got {len(note)})",
        )
    return ProgressSubmission(progress_rate=rate, spent_minutes=minutes, note=note)


class ProgressStore:
    def __init__(self, policy: CompletionPolicy) -> None:
        self.policy = policy

    async def get(
        self, uow: UnitOfWork, user_id: str, material_id: int
    ) -> LeafProgress | None:
        return await uow.progress.get(user_id, material_id)

    async def list_for_user(
        self,
        uow: UnitOfWork,
        user_id: str,
        filters: LeafProgressFilter,
        limit: int,
        offset: int = 0,
    ) -> tuple[list[LeafProgress], int]:
        check_page(limit, offset)
        return await uow.progress.list_for_user(user_id, filters, limit, offset)

    async def require_material(
        self, uow: UnitOfWork, material_id: int
    ) -> CatalogMaterial:
        material = await uow.catalog.get_material(material_id)
        if material is None:
            raise ProgressNotFoundError(
                NotFoundReason.MATERIAL_NOT_FOUND,
                f"learning material {material_id} does not exist",
            )
        return material

    async def require_manual_material(
        self, uow: UnitOfWork, material_id: int
    ) -> CatalogMaterial:
        material = await self.require_material(uow, material_id)
        if not material.allow_manual_progress:
            raise ProgressValidationError(
                ValidationReason.MANUAL_PROGRESS_NOT_ALLOWED,
                f"learning material {material_id} does not support manual "
                "progress tracking; its progress is recorded automatically",
            )
        return material

    async def upsert(
        self,
        uow: UnitOfWork,
        user_id: str,
        material_id: int,
        submission: ProgressSubmission,
        *,
        clock: Callable[[], datetime],
    ) -> StoredProgress:
        """Write one leaf under its row lock.

        The clock is read only once the lock is held, so on a contended
        leaf the later commit always carries the later timestamp.
        """
        material = await self.require_manual_material(uow, material_id)
        lesson = await uow.catalog.get_lesson(material.lesson_id)
        course_id = lesson.course_id if lesson is not None else None

        previous = await uow.progress.get_for_update(user_id, material_id)
        now = clock()
        completion = apply_completion(
            previous, submission.progress_rate, now, self.policy
        )
        minutes_delta = submission.spent_minutes or 0
        spent_minutes = minutes_delta + (previous.spent_minutes if previous else 0)
        note = submission.note
        if note is None and previous is not None:
            note = previous.note

        current = LeafProgress(
            id=previous.id if previous is not None else 0,
            user_id=user_id,
            course_id=course_id,
            lesson_id=material.lesson_id,
            material_id=material_id,
            progress_kind=ProgressKind.MANUAL,
            progress_rate=submission.progress_rate,
            manual_progress_rate=submission.progress_rate,
            spent_minutes=spent_minutes,
            is_completed=completion.is_completed,
            completion_date=completion.completion_date,
            note=note,
            last_updated_at=now,
        )
        current = await uow.progress.save(current)
        logger.debug(
            "Leaf progress stored",
            extra={"user_id": user_id, "material_id": material_id},
        )
        return StoredProgress(
            previous=previous,
            current=current,
            completion=completion,
            minutes_delta=minutes_delta,
        )
