"""Learner progress endpoints.

Write path:
  PUT  /v1/progress/materials/{id}/manual    -> coordinator.submit_progress
  POST /v1/progress/materials/{id}/complete  -> coordinator.complete_material
  POST /v1/progress/sessions                 -> coordinator.record_session
  After commit the learner's cache generation is bumped, which retires
  every cached summary and statistic of theirs.

Read path (read-through cached where noted):
  GET /v1/progress/me                        own leaf records, filtered, paged
  GET /v1/progress/materials/{id}            leaf record (null if none yet)
  GET /v1/progress/materials/{id}/history    newest first, limit/offset
  GET /v1/progress/lessons/{id}/summary      cached
  GET /v1/progress/courses/{id}/summary      cached
  GET /v1/progress/statistics                cached
  GET /v1/progress/statistics/summary        cached
  GET /v1/progress/streak                    never cached (isAlive is "today")

Every endpoint acts on the caller's own progress.  Admin-assisted edits
live in admin.py.
"""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies import require_user
from app.api.errors import progress_errors
from app.core.metrics import CACHE_OPERATIONS
from app.models.activity import StreakState
from app.models.principal import Principal
from app.models.progress import HistoryEntry, LeafProgress, LeafProgressFilter
from app.models.summary import CourseSummary, LessonSummary
from app.services.cache import (
    SUMMARY_CACHE_TTL,
    cache_service,
    invalidate_progress,
    read_generation,
    stats_key,
    summary_key,
)
from app.services.coordinator import SubmissionResult, progress_coordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class ManualProgressIn(BaseModel):
    # Range, precision and integrality are checked by the engine so the
    # caller gets the specific rule back instead of a generic 422.
    progress_rate: Decimal
    spent_minutes: Decimal | None = None
    note: str | None = None
    idempotency_key: str | None = Field(default=None, max_length=255)


class CompleteMaterialIn(BaseModel):
    idempotency_key: str | None = Field(default=None, max_length=255)


class LeafProgressOut(BaseModel):
    id: int
    user_id: str
    course_id: int | None
    lesson_id: int | None
    material_id: int | None
    progress_kind: str
    progress_rate: Decimal
    manual_progress_rate: Decimal | None
    spent_minutes: int
    is_completed: bool
    completion_date: datetime.datetime | None
    note: str | None
    last_updated_at: datetime.datetime

    @classmethod
    def from_domain(cls, leaf: LeafProgress) -> LeafProgressOut:
        return cls(
            id=leaf.id,
            user_id=leaf.user_id,
            course_id=leaf.course_id,
            lesson_id=leaf.lesson_id,
            material_id=leaf.material_id,
            progress_kind=leaf.progress_kind.value,
            progress_rate=leaf.progress_rate,
            manual_progress_rate=leaf.manual_progress_rate,
            spent_minutes=leaf.spent_minutes,
            is_completed=leaf.is_completed,
            completion_date=leaf.completion_date,
            note=leaf.note,
            last_updated_at=leaf.last_updated_at,
        )


class ProgressPageOut(BaseModel):
    items: list[LeafProgressOut]
    total: int
    limit: int
    offset: int


class HistoryEntryOut(BaseModel):
    id: int
    progress_rate: Decimal
    spent_minutes: int
    minutes_delta: int
    became_completed: bool
    changed_by: str
    note: str | None
    created_at: datetime.datetime

    @classmethod
    def from_domain(cls, entry: HistoryEntry) -> HistoryEntryOut:
        return cls(
            id=entry.id,
            progress_rate=entry.progress_rate,
            spent_minutes=entry.spent_minutes,
            minutes_delta=entry.minutes_delta,
            became_completed=entry.became_completed,
            changed_by=entry.changed_by,
            note=entry.note,
            created_at=entry.created_at,
        )


class LessonSummaryOut(BaseModel):
    lesson_id: int
    aggregate_progress_rate: Decimal
    completed_material_count: int
    total_material_count: int

    @classmethod
    def from_domain(cls, summary: LessonSummary) -> LessonSummaryOut:
        return cls(
            lesson_id=summary.lesson_id,
            aggregate_progress_rate=summary.aggregate_progress_rate,
            completed_material_count=summary.completed_material_count,
            total_material_count=summary.total_material_count,
        )


class CourseSummaryOut(BaseModel):
    course_id: int
    aggregate_progress_rate: Decimal
    completed_lesson_count: int
    total_lesson_count: int

    @classmethod
    def from_domain(cls, summary: CourseSummary) -> CourseSummaryOut:
        return cls(
            course_id=summary.course_id,
            aggregate_progress_rate=summary.aggregate_progress_rate,
            completed_lesson_count=summary.completed_lesson_count,
            total_lesson_count=summary.total_lesson_count,
        )


class StreakOut(BaseModel):
    current_streak_days: int
    longest_streak_days: int
    last_active_date: datetime.date | None
    is_alive: bool

    @classmethod
    def from_domain(cls, state: StreakState, today: datetime.date) -> StreakOut:
        return cls(
            current_streak_days=state.current_streak_days,
            longest_streak_days=state.longest_streak_days,
            last_active_date=state.last_active_date,
            is_alive=state.is_alive(today),
        )


class SubmissionOut(BaseModel):
    progress: LeafProgressOut
    history_entry: HistoryEntryOut
    lesson_summary: LessonSummaryOut | None
    course_summary: CourseSummaryOut | None
    streak: StreakOut
    became_completed: bool
    became_incomplete: bool
    replayed: bool

    @classmethod
    def from_result(
        cls, result: SubmissionResult, today: datetime.date
    ) -> SubmissionOut:
        return cls(
            progress=LeafProgressOut.from_domain(result.leaf),
            history_entry=HistoryEntryOut.from_domain(result.history_entry),
            lesson_summary=(
                LessonSummaryOut.from_domain(result.lesson_summary)
                if result.lesson_summary is not None
                else None
            ),
            course_summary=(
                CourseSummaryOut.from_domain(result.course_summary)
                if result.course_summary is not None
                else None
            ),
            streak=StreakOut.from_domain(result.streak, today),
            became_completed=result.became_completed,
            became_incomplete=result.became_incomplete,
            replayed=result.replayed,
        )


class TimeSeriesPointOut(BaseModel):
    bucket_date: datetime.date
    spent_minutes: int
    completed_material_count: int
    average_progress_rate: Decimal


class StatisticsOut(BaseModel):
    granularity: str
    start: datetime.date
    end: datetime.date
    points: list[TimeSeriesPointOut]


class StudySummaryOut(BaseModel):
    start_date: datetime.date
    end_date: datetime.date
    total_spent_minutes: int
    total_session_minutes: int
    active_days: int
    completed_materials: int
    update_count: int
    average_minutes_per_active_day: Decimal
    average_progress_rate: Decimal
    current_streak_days: int
    longest_streak_days: int


class SessionIn(BaseModel):
    started_at: datetime.datetime
    ended_at: datetime.datetime
    material_id: int | None = None


class SessionOut(BaseModel):
    id: int
    started_at: datetime.datetime
    ended_at: datetime.datetime
    minutes: int
    material_id: int | None
    streak: StreakOut


# ---------------------------------------------------------------------------
# Shared write helper (also used by admin.py)
# ---------------------------------------------------------------------------


async def submit_and_invalidate(
    user_id: str,
    material_id: int,
    body: ManualProgressIn,
    *,
    changed_by: str,
    idempotency_key: str | None,
) -> SubmissionOut:
    with progress_errors():
        result = await progress_coordinator.submit_progress(
            user_id,
            material_id,
            body.progress_rate,
            body.spent_minutes,
            body.note,
            changed_by=changed_by,
            idempotency_key=body.idempotency_key or idempotency_key,
        )
    # The write is committed; anything cached for this learner may be stale.
    await invalidate_progress(cache_service, user_id)
    return SubmissionOut.from_result(result, progress_coordinator.today())


# ---------------------------------------------------------------------------
# Write endpoints
# ---------------------------------------------------------------------------


@router.put("/materials/{material_id}/manual", response_model=SubmissionOut)
async def submit_manual_progress(
    material_id: int,
    body: ManualProgressIn,
    principal: Annotated[Principal, Depends(require_user)],
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> SubmissionOut:
    return await submit_and_invalidate(
        principal.user_id,
        material_id,
        body,
        changed_by=principal.user_id,
        idempotency_key=idempotency_key,
    )


@router.post("/materials/{material_id}/complete", response_model=SubmissionOut)
async def complete_material(
    material_id: int,
    principal: Annotated[Principal, Depends(require_user)],
    body: CompleteMaterialIn | None = None,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> SubmissionOut:
    key = (body.idempotency_key if body is not None else None) or idempotency_key
    with progress_errors():
        result = await progress_coordinator.complete_material(
            principal.user_id, material_id, idempotency_key=key
        )
    await invalidate_progress(cache_service, principal.user_id)
    return SubmissionOut.from_result(result, progress_coordinator.today())


@router.post(
    "/sessions", response_model=SessionOut, status_code=status.HTTP_201_CREATED
)
async def record_learning_session(
    body: SessionIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> SessionOut:
    with progress_errors():
        result = await progress_coordinator.record_session(
            principal.user_id, body.started_at, body.ended_at, body.material_id
        )
    await invalidate_progress(cache_service, principal.user_id)
    session = result.session
    return SessionOut(
        id=session.id,
        started_at=session.started_at,
        ended_at=session.ended_at,
        minutes=session.minutes,
        material_id=session.material_id,
        streak=StreakOut.from_domain(result.streak, progress_coordinator.today()),
    )


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get("/me", response_model=ProgressPageOut)
async def list_my_progress(
    principal: Annotated[Principal, Depends(require_user)],
    course_id: int | None = None,
    lesson_id: int | None = None,
    is_completed: bool | None = None,
    limit: int = 20,
    offset: int = 0,
) -> ProgressPageOut:
    filters = LeafProgressFilter(
        course_id=course_id, lesson_id=lesson_id, is_completed=is_completed
    )
    with progress_errors():
        page = await progress_coordinator.list_progress(
            principal.user_id, filters, limit, offset
        )
    return ProgressPageOut(
        items=[LeafProgressOut.from_domain(leaf) for leaf in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/materials/{material_id}", response_model=LeafProgressOut | None)
async def get_material_progress(
    material_id: int,
    principal: Annotated[Principal, Depends(require_user)],
) -> LeafProgressOut | None:
    with progress_errors():
        leaf = await progress_coordinator.get_material_progress(
            principal.user_id, material_id
        )
    return LeafProgressOut.from_domain(leaf) if leaf is not None else None


@router.get(
    "/materials/{material_id}/history", response_model=list[HistoryEntryOut]
)
async def get_history(
    material_id: int,
    principal: Annotated[Principal, Depends(require_user)],
    limit: int = 20,
    offset: int = 0,
) -> list[HistoryEntryOut]:
    with progress_errors():
        entries = await progress_coordinator.get_history(
            principal.user_id, material_id, limit, offset
        )
    return [HistoryEntryOut.from_domain(e) for e in entries]


@router.get("/lessons/{lesson_id}/summary", response_model=LessonSummaryOut)
async def get_lesson_summary(
    lesson_id: int,
    principal: Annotated[Principal, Depends(require_user)],
) -> LessonSummaryOut:
    generation = await read_generation(cache_service, principal.user_id)
    cache_key = summary_key(principal.user_id, generation, "lesson", lesson_id)
    cached = await cache_service.get(cache_key)
    if cached is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return LessonSummaryOut.model_validate_json(cached)
    CACHE_OPERATIONS.labels(operation="miss").inc()

    with progress_errors():
        summary = await progress_coordinator.get_lesson_summary(
            principal.user_id, lesson_id
        )
    out = LessonSummaryOut.from_domain(summary)
    await cache_service.set(cache_key, out.model_dump_json(), SUMMARY_CACHE_TTL)
    return out


@router.get("/courses/{course_id}/summary", response_model=CourseSummaryOut)
async def get_course_summary(
    course_id: int,
    principal: Annotated[Principal, Depends(require_user)],
) -> CourseSummaryOut:
    generation = await read_generation(cache_service, principal.user_id)
    cache_key = summary_key(principal.user_id, generation, "course", course_id)
    cached = await cache_service.get(cache_key)
    if cached is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return CourseSummaryOut.model_validate_json(cached)
    CACHE_OPERATIONS.labels(operation="miss").inc()

    with progress_errors():
        summary = await progress_coordinator.get_course_summary(
            principal.user_id, course_id
        )
    out = CourseSummaryOut.from_domain(summary)
    await cache_service.set(cache_key, out.model_dump_json(), SUMMARY_CACHE_TTL)
    return out


@router.get("/statistics", response_model=StatisticsOut)
async def get_statistics(
    principal: Annotated[Principal, Depends(require_user)],
    start: Annotated[datetime.date, Query()],
    end: Annotated[datetime.date, Query()],
    granularity: str = "day",
) -> StatisticsOut:
    generation = await read_generation(cache_service, principal.user_id)
    cache_key = stats_key(
        principal.user_id,
        generation,
        "series",
        granularity,
        start.isoformat(),
        end.isoformat(),
    )
    cached = await cache_service.get(cache_key)
    if cached is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return StatisticsOut.model_validate_json(cached)
    CACHE_OPERATIONS.labels(operation="miss").inc()

    with progress_errors():
        series = await progress_coordinator.get_statistics(
            principal.user_id, start, end, granularity
        )
    out = StatisticsOut(
        granularity=series.granularity.value,
        start=start,
        end=end,
        points=[
            TimeSeriesPointOut(
                bucket_date=p.bucket_date,
                spent_minutes=p.spent_minutes,
                completed_material_count=p.completed_material_count,
                average_progress_rate=p.average_progress_rate,
            )
            for p in series
        ],
    )
    await cache_service.set(cache_key, out.model_dump_json(), SUMMARY_CACHE_TTL)
    return out


@router.get("/statistics/summary", response_model=StudySummaryOut)
async def get_study_summary(
    principal: Annotated[Principal, Depends(require_user)],
    start: Annotated[datetime.date, Query()],
    end: Annotated[datetime.date, Query()],
) -> StudySummaryOut:
    generation = await read_generation(cache_service, principal.user_id)
    cache_key = stats_key(
        principal.user_id, generation, "summary", start.isoformat(), end.isoformat()
    )
    cached = await cache_service.get(cache_key)
    if cached is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return StudySummaryOut.model_validate_json(cached)
    CACHE_OPERATIONS.labels(operation="miss").inc()

    with progress_errors():
        stats = await progress_coordinator.get_study_summary(
            principal.user_id, start, end
        )
    out = StudySummaryOut(
        start_date=stats.start_date,
        end_date=stats.end_date,
        total_spent_minutes=stats.total_spent_minutes,
        total_session_minutes=stats.total_session_minutes,
        active_days=stats.active_days,
        completed_materials=stats.completed_materials,
        update_count=stats.update_count,
        average_minutes_per_active_day=stats.average_minutes_per_active_day,
        average_progress_rate=stats.average_progress_rate,
        current_streak_days=stats.current_streak_days,
        longest_streak_days=stats.longest_streak_days,
    )
    await cache_service.set(cache_key, out.model_dump_json(), SUMMARY_CACHE_TTL)
    return out


@router.get("/streak", response_model=StreakOut)
async def get_streak(
    principal: Annotated[Principal, Depends(require_user)],
) -> StreakOut:
    with progress_errors():
        state = await progress_coordinator.get_streak(principal.user_id)
    return StreakOut.from_domain(state, progress_coordinator.today())
