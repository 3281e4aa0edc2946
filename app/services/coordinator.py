"""ProgressCoordinator: one progress submission, start to finish.

A submission moves through

    RECEIVED -> VALIDATED -> PERSISTED -> HISTORY_RECORDED
             -> AGGREGATED -> ANALYTICS_UPDATED -> ACKNOWLEDGED

inside a single unit of work.  It ends early in REJECTED (bad input,
unknown material, idempotency conflict; nothing was written) or FAILED
(storage error or timeout; the unit of work rolled back).  Because the
commit is the last step before ACKNOWLEDGED, no caller can observe a leaf
write without its history entry and refreshed summaries.

The one tolerated partial outcome is an orphaned ancestor: if the lesson
or course of a material is missing from the catalog, that roll-up is
skipped and counted, and the leaf write still commits.

Locks are taken in one order: idempotency key, leaf, then the owning
lesson and course summary rows, then the learner's streak.  The write
timestamp is read after the leaf lock is held.

The routers call the module-level `progress_coordinator` singleton.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import hashlib
import json
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import SETTINGS
from app.core.metrics import (
    AGGREGATION_ANOMALIES,
    COMPLETION_TRANSITIONS,
    PROGRESS_SUBMISSIONS,
    SUBMISSION_DURATION,
)
from app.db.engine import async_session_factory
from app.models.activity import LearningSession, StreakState
from app.models.progress import HistoryEntry, LeafProgress, LeafProgressFilter
from app.models.statistics import Granularity, StudyStatistics
from app.models.summary import CourseSummary, LessonSummary
from app.repos.catalog_repo import seed_sample_catalog
from app.repos.memory import InMemoryDatabase
from app.repos.pg_unit_of_work import PgUnitOfWork
from app.repos.unit_of_work import InMemoryUnitOfWork, UnitOfWork, UnitOfWorkFactory
from app.services.aggregation import AggregationEngine
from app.services.completion import CompletionPolicy
from app.services.errors import (
    ConsistencyError,
    IdempotencyConflictError,
    NotFoundReason,
    ProgressNotFoundError,
    ProgressValidationError,
    TransientError,
)
from app.services.history import DEFAULT_HISTORY_LIMIT, HistoryRecorder
from app.services.progress_store import (
    ProgressStore,
    ProgressSubmission,
    validate_submission,
)
from app.services.sessions import record_session
from app.services.statistics import StatisticsAggregator, TimeSeries, local_date
from app.services.streaks import StreakTracker

logger = logging.getLogger(__name__)


class SubmissionState(str, enum.Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    PERSISTED = "persisted"
    HISTORY_RECORDED = "history_recorded"
    AGGREGATED = "aggregated"
    ANALYTICS_UPDATED = "analytics_updated"
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    leaf: LeafProgress
    history_entry: HistoryEntry
    lesson_summary: LessonSummary | None
    course_summary: CourseSummary | None
    streak: StreakState
    became_completed: bool = False
    became_incomplete: bool = False
    replayed: bool = False
    state: SubmissionState = SubmissionState.ACKNOWLEDGED


@dataclass(frozen=True, slots=True)
class SessionResult:
    session: LearningSession
    streak: StreakState


@dataclass(frozen=True, slots=True)
class ProgressPage:
    items: list[LeafProgress]
    total: int
    limit: int
    offset: int


def request_fingerprint(
    user_id: str, material_id: int, submission: ProgressSubmission
) -> str:
    """SHA-256 over the normalized payload of a submission."""
    payload = json.dumps(
        {
            "user_id": user_id,
            "material_id": material_id,
            "progress_rate": str(submission.progress_rate),
            "spent_minutes": submission.spent_minutes,
            "note": submission.note,
        },
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ProgressCoordinator:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        policy: CompletionPolicy = CompletionPolicy.REVERSIBLE,
        zone: ZoneInfo | None = None,
        timeout_seconds: float = 3.0,
        idempotency_window_seconds: int = 600,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self.zone = zone or ZoneInfo("UTC")
        self.timeout_seconds = timeout_seconds
        self.idempotency_window = timedelta(seconds=idempotency_window_seconds)
        self._clock = clock
        self.store = ProgressStore(policy)
        self.history = HistoryRecorder()
        self.aggregation = AggregationEngine()
        self.streaks = StreakTracker()
        self.statistics = StatisticsAggregator(self.zone)

    @property
    def policy(self) -> CompletionPolicy:
        return self.store.policy

    def today(self) -> date:
        return local_date(self._clock(), self.zone)

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def submit_progress(
        self,
        user_id: str,
        material_id: int,
        progress_rate: object,
        spent_minutes: object = None,
        note: str | None = None,
        *,
        changed_by: str | None = None,
        idempotency_key: str | None = None,
    ) -> SubmissionResult:
        """Validate, persist, audit, roll up and record activity atomically.

        `changed_by` defaults to `user_id`; an admin editing on behalf of
        a learner passes their own id.
        """
        log_extra = {"user_id": user_id, "material_id": material_id}
        reached = [SubmissionState.RECEIVED]
        outcome = "failed"
        started = time.perf_counter()
        try:
            async with asyncio.timeout(self.timeout_seconds):
                result = await self._submit(
                    reached,
                    user_id,
                    material_id,
                    progress_rate,
                    spent_minutes,
                    note,
                    changed_by=changed_by or user_id,
                    idempotency_key=idempotency_key,
                )
            outcome = "replayed" if result.replayed else "acknowledged"
        except (
            ProgressValidationError,
            ProgressNotFoundError,
            IdempotencyConflictError,
        ) as exc:
            outcome = "rejected"
            reason = getattr(exc, "reason", None)
            logger.warning(
                "Progress submission rejected: %s",
                exc.message,
                extra={
                    **log_extra,
                    "outcome": outcome,
                    "reason": reason.value if reason is not None else exc.code,
                },
            )
            raise
        except TimeoutError as exc:
            logger.warning(
                "Progress submission timed out after %s (rolled back)",
                reached[-1].value,
                extra={**log_extra, "outcome": outcome},
            )
            raise TransientError(
                "progress submission timed out; it is safe to retry"
            ) from exc
        except SQLAlchemyError as exc:
            logger.warning(
                "Progress submission failed in storage after %s (rolled back): %s",
                reached[-1].value,
                exc.__class__.__name__,
                extra={**log_extra, "outcome": outcome},
            )
            raise TransientError(
                "storage is temporarily unavailable; it is safe to retry"
            ) from exc
        except Exception:
            logger.exception(
                "Progress submission failed after %s (rolled back)",
                reached[-1].value,
                extra={**log_extra, "outcome": outcome},
            )
            raise
        finally:
            PROGRESS_SUBMISSIONS.labels(outcome=outcome).inc()
            SUBMISSION_DURATION.observe(time.perf_counter() - started)

        if result.became_completed:
            COMPLETION_TRANSITIONS.labels(transition="completed").inc()
        if result.became_incomplete:
            COMPLETION_TRANSITIONS.labels(transition="uncompleted").inc()
        logger.info(
            "Progress submission %s: rate=%s completed=%s",
            outcome,
            result.leaf.progress_rate,
            result.leaf.is_completed,
            extra={**log_extra, "outcome": outcome},
        )
        return result

    async def complete_material(
        self,
        user_id: str,
        material_id: int,
        *,
        changed_by: str | None = None,
        idempotency_key: str | None = None,
    ) -> SubmissionResult:
        return await self.submit_progress(
            user_id,
            material_id,
            Decimal("100"),
            changed_by=changed_by,
            idempotency_key=idempotency_key,
        )

    async def _submit(
        self,
        reached: list[SubmissionState],
        user_id: str,
        material_id: int,
        progress_rate: object,
        spent_minutes: object,
        note: str | None,
        *,
        changed_by: str,
        idempotency_key: str | None,
    ) -> SubmissionResult:
        submission = validate_submission(progress_rate, spent_minutes, note)
        fingerprint = None
        if idempotency_key is not None:
            fingerprint = request_fingerprint(user_id, material_id, submission)

        async with self._uow_factory() as uow:
            await self.store.require_manual_material(uow, material_id)
            if idempotency_key is not None and self.idempotency_window:
                # Held until commit, so a retry racing its original waits
                # here and then finds the original's history entry.
                await uow.history.lock_idempotency_key(changed_by, idempotency_key)
                prior = await uow.history.find_by_idempotency_key(
                    changed_by,
                    idempotency_key,
                    self._clock() - self.idempotency_window,
                )
                if prior is not None:
                    if prior.request_fingerprint != fingerprint:
                        raise IdempotencyConflictError(
                            f"idempotency key {idempotency_key!r} was already "
                            "used for a different progress submission"
                        )
                    return await self._replay(uow, user_id, material_id, prior)
            reached.append(SubmissionState.VALIDATED)

            stored = await self.store.upsert(
                uow, user_id, material_id, submission, clock=self._clock
            )
            leaf = stored.current
            now = leaf.last_updated_at
            transition = stored.completion.transition
            reached.append(SubmissionState.PERSISTED)

            entry = await self.history.append(
                uow,
                leaf,
                changed_by=changed_by,
                minutes_delta=stored.minutes_delta,
                became_completed=transition.became_completed,
                idempotency_key=idempotency_key,
                request_fingerprint=fingerprint,
            )
            reached.append(SubmissionState.HISTORY_RECORDED)

            lesson_summary, course_summary = await self._aggregate(uow, leaf)
            reached.append(SubmissionState.AGGREGATED)

            activity_day = local_date(now, self.zone)
            streak = await self.streaks.record_activity(uow, user_id, activity_day)
            await self.statistics.record_update(
                uow,
                user_id,
                activity_day,
                minutes_delta=stored.minutes_delta,
                became_completed=transition.became_completed,
            )
            reached.append(SubmissionState.ANALYTICS_UPDATED)

            await uow.commit()

        reached.append(SubmissionState.ACKNOWLEDGED)
        return SubmissionResult(
            leaf=leaf,
            history_entry=entry,
            lesson_summary=lesson_summary,
            course_summary=course_summary,
            streak=streak,
            became_completed=transition.became_completed,
            became_incomplete=transition.became_incomplete,
        )

    async def _replay(
        self,
        uow: UnitOfWork,
        user_id: str,
        material_id: int,
        prior: HistoryEntry,
    ) -> SubmissionResult:
        leaf = await uow.progress.get(user_id, material_id)
        if leaf is None:
            raise LookupError(
                f"history entry {prior.id} has no leaf for material {material_id}"
            )
        lesson_summary = None
        if leaf.lesson_id is not None:
            lesson_summary = await uow.summaries.get_lesson(user_id, leaf.lesson_id)
        course_summary = None
        if leaf.course_id is not None:
            course_summary = await uow.summaries.get_course(user_id, leaf.course_id)
        return SubmissionResult(
            leaf=leaf,
            history_entry=prior,
            lesson_summary=lesson_summary,
            course_summary=course_summary,
            streak=await self.streaks.get(uow, user_id),
            replayed=True,
        )

    async def _aggregate(
        self, uow: UnitOfWork, leaf: LeafProgress
    ) -> tuple[LessonSummary | None, CourseSummary | None]:
        lesson_summary = course_summary = None
        try:
            lesson_summary = await self.aggregation.recompute_lesson(
                uow, leaf.user_id, leaf.lesson_id
            )
        except ConsistencyError as exc:
            self._record_anomaly(exc, leaf)
        try:
            course_summary = await self.aggregation.recompute_course(
                uow, leaf.user_id, leaf.course_id
            )
        except ConsistencyError as exc:
            self._record_anomaly(exc, leaf)
        return lesson_summary, course_summary

    def _record_anomaly(self, exc: ConsistencyError, leaf: LeafProgress) -> None:
        AGGREGATION_ANOMALIES.labels(level=exc.level).inc()
        logger.warning(
            "Skipped %s roll-up: %s",
            exc.level,
            exc.message,
            extra={
                "user_id": leaf.user_id,
                "material_id": leaf.material_id,
                "lesson_id": leaf.lesson_id,
                "course_id": leaf.course_id,
                "reason": "orphaned_" + exc.level,
            },
        )

    async def record_session(
        self,
        user_id: str,
        started_at: datetime,
        ended_at: datetime,
        material_id: int | None = None,
    ) -> SessionResult:
        """Store a learning session and count it as activity on its end date."""
        try:
            async with asyncio.timeout(self.timeout_seconds):
                async with self._uow_factory() as uow:
                    session = await record_session(
                        uow, user_id, started_at, ended_at, material_id
                    )
                    activity_day = local_date(ended_at, self.zone)
                    streak = await self.streaks.record_activity(
                        uow, user_id, activity_day
                    )
                    await self.statistics.record_session(
                        uow, user_id, activity_day, session.minutes
                    )
                    await uow.commit()
        except TimeoutError as exc:
            logger.warning("Session recording timed out", extra={"user_id": user_id})
            raise TransientError(
                "session recording timed out; it is safe to retry"
            ) from exc
        except SQLAlchemyError as exc:
            logger.warning(
                "Session recording failed in storage: %s",
                exc.__class__.__name__,
                extra={"user_id": user_id},
            )
            raise TransientError(
                "storage is temporarily unavailable; it is safe to retry"
            ) from exc
        logger.info(
            "Learning session recorded: %d min",
            session.minutes,
            extra={"user_id": user_id, "material_id": material_id},
        )
        return SessionResult(session=session, streak=streak)

    # ------------------------------------------------------------------
    # Read path (never commits)
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _reading(self) -> AsyncIterator[UnitOfWork]:
        try:
            async with self._uow_factory() as uow:
                yield uow
        except SQLAlchemyError as exc:
            logger.warning("Progress read failed in storage: %s", exc.__class__.__name__)
            raise TransientError(
                "storage is temporarily unavailable; it is safe to retry"
            ) from exc

    async def get_material_progress(
        self, user_id: str, material_id: int
    ) -> LeafProgress | None:
        async with self._reading() as uow:
            await self.store.require_material(uow, material_id)
            return await self.store.get(uow, user_id, material_id)

    async def list_progress(
        self,
        user_id: str,
        filters: LeafProgressFilter | None = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> ProgressPage:
        """The learner's leaf records, most recently updated first."""
        async with self._reading() as uow:
            items, total = await self.store.list_for_user(
                uow, user_id, filters or LeafProgressFilter(), limit, offset
            )
        return ProgressPage(items=items, total=total, limit=limit, offset=offset)

    async def get_history(
        self,
        user_id: str,
        material_id: int,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> list[HistoryEntry]:
        async with self._reading() as uow:
            await self.store.require_material(uow, material_id)
            return await self.history.list(uow, user_id, material_id, limit, offset)

    async def get_lesson_summary(self, user_id: str, lesson_id: int) -> LessonSummary:
        """Computed from current leaves; nothing is persisted on read."""
        async with self._reading() as uow:
            if await uow.catalog.get_lesson(lesson_id) is None:
                raise ProgressNotFoundError(
                    NotFoundReason.LESSON_NOT_FOUND,
                    f"lesson {lesson_id} does not exist",
                )
            return await self.aggregation.compute_lesson(uow, user_id, lesson_id)

    async def get_course_summary(self, user_id: str, course_id: int) -> CourseSummary:
        async with self._reading() as uow:
            if await uow.catalog.get_course(course_id) is None:
                raise ProgressNotFoundError(
                    NotFoundReason.COURSE_NOT_FOUND,
                    f"course {course_id} does not exist",
                )
            summary, _ = await self.aggregation.compute_course(uow, user_id, course_id)
            return summary

    async def get_statistics(
        self,
        user_id: str,
        start: date,
        end: date,
        granularity: str | Granularity = Granularity.DAY,
    ) -> TimeSeries:
        async with self._reading() as uow:
            return await self.statistics.bucket(uow, user_id, start, end, granularity)

    async def get_study_summary(
        self, user_id: str, start: date, end: date
    ) -> StudyStatistics:
        async with self._reading() as uow:
            streak = await self.streaks.get(uow, user_id)
            return await self.statistics.summarize(uow, user_id, start, end, streak)

    async def get_streak(self, user_id: str) -> StreakState:
        async with self._reading() as uow:
            return await self.streaks.get(uow, user_id)


# ---------------------------------------------------------------------------
# Module-level wiring
# ---------------------------------------------------------------------------

memory_db = InMemoryDatabase()

if async_session_factory is not None:
    _session_factory = async_session_factory

    def uow_factory() -> UnitOfWork:
        return PgUnitOfWork(_session_factory)

else:
    if SETTINGS.is_dev:
        seed_sample_catalog(memory_db)

    def uow_factory() -> UnitOfWork:
        return InMemoryUnitOfWork(memory_db)


progress_coordinator = ProgressCoordinator(
    uow_factory,
    policy=CompletionPolicy(SETTINGS.completion_policy),
    zone=SETTINGS.activity_zone,
    timeout_seconds=SETTINGS.submit_timeout_seconds,
    idempotency_window_seconds=SETTINGS.idempotency_window_seconds,
)
