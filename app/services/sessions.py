from __future__ import annotations

from datetime import datetime

from app.models.activity import LearningSession
from app.repos.unit_of_work import UnitOfWork
from app.services.errors import (
    NotFoundReason,
    ProgressNotFoundError,
    ProgressValidationError,
    ValidationReason,
)


def session_minutes(started_at: datetime, ended_at: datetime) -> int:
    """Whole minutes between start and end, rounded down."""
    if started_at.tzinfo is None or ended_at.tzinfo is None:
        raise ProgressValidationError(
            ValidationReason.INVALID_RANGE, "session times must include a UTC offset"
        )
    if ended_at <= started_at:
        raise ProgressValidationError(
            ValidationReason.INVALID_RANGE, "ended_at must be after started_at"
        )
    return int((ended_at - started_at).total_seconds() // 60)


async def record_session(
    uow: UnitOfWork,
    user_id: str,
    started_at: datetime,
    ended_at: datetime,
    material_id: int | None = None,
) -> LearningSession:
    minutes = session_minutes(started_at, ended_at)
    if material_id is not None and await uow.catalog.get_material(material_id) is None:
        raise ProgressNotFoundError(
            NotFoundReason.MATERIAL_NOT_FOUND,
            f"learning material {material_id} does not exist",
        )
    return await uow.activity.add_session(
        LearningSession(
            id=0,
            user_id=user_id,
            started_at=started_at,
            ended_at=ended_at,
            minutes=minutes,
            material_id=material_id,
        )
    )
