"""PostgreSQL implementation of LeafProgressRepo."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import UserProgressRow
from app.models.progress import LeafProgress, LeafProgressFilter, ProgressKind


class PgLeafProgressRepo:
    """Satisfies the LeafProgressRepo Protocol using PostgreSQL via SQLAlchemy.

    get_for_update takes a transaction-scoped advisory lock on
    (user_id, material_id) before reading.  The lock also covers the case
    where the row does not exist yet, so two first writes for the same
    pair queue up instead of racing on the unique constraint.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str, material_id: int) -> LeafProgress | None:
        row = await self._select_row(user_id, material_id)
        if row is None:
            return None
        return _row_to_progress(row)

    async def get_for_update(
        self, user_id: str, material_id: int
    ) -> LeafProgress | None:
        await self._session.execute(
            select(func.pg_advisory_xact_lock(func.hashtext(user_id), material_id))
        )
        row = await self._select_row(user_id, material_id, for_update=True)
        if row is None:
            return None
        return _row_to_progress(row)

    async def save(self, progress: LeafProgress) -> LeafProgress:
        if progress.id == 0:
            row = UserProgressRow(user_id=progress.user_id)
            self._session.add(row)
        else:
            row = await self._session.get(UserProgressRow, progress.id)
            if row is None:
                raise LookupError(f"user_progress row {progress.id} vanished")
        row.course_id = progress.course_id
        row.lesson_id = progress.lesson_id
        row.material_id = progress.material_id
        row.progress_kind = progress.progress_kind.value
        row.progress_rate = progress.progress_rate
        row.manual_progress_rate = progress.manual_progress_rate
        row.spent_minutes = progress.spent_minutes
        row.is_completed = progress.is_completed
        row.completion_date = progress.completion_date
        row.note = progress.note
        row.last_updated_at = progress.last_updated_at
        await self._session.flush()
        return _row_to_progress(row)

    async def list_for_materials(
        self, user_id: str, material_ids: Iterable[int]
    ) -> dict[int, LeafProgress]:
        ids = list(material_ids)
        if not ids:
            return {}
        stmt = select(UserProgressRow).where(
            UserProgressRow.user_id == user_id,
            UserProgressRow.material_id.in_(ids),
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return {r.material_id: _row_to_progress(r) for r in rows}

    async def list_for_user(
        self, user_id: str, filters: LeafProgressFilter, limit: int, offset: int = 0
    ) -> tuple[list[LeafProgress], int]:
        conditions = [UserProgressRow.user_id == user_id]
        if filters.course_id is not None:
            conditions.append(UserProgressRow.course_id == filters.course_id)
        if filters.lesson_id is not None:
            conditions.append(UserProgressRow.lesson_id == filters.lesson_id)
        if filters.is_completed is not None:
            conditions.append(UserProgressRow.is_completed == filters.is_completed)

        total_stmt = (
            select(func.count()).select_from(UserProgressRow).where(*conditions)
        )
        total = (await self._session.execute(total_stmt)).scalar_one()
        stmt = (
            select(UserProgressRow)
            .where(*conditions)
            .order_by(UserProgressRow.last_updated_at.desc(), UserProgressRow.id.desc())
            .limit(limit)
            .offset(offset)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_progress(r) for r in rows], total

    async def _select_row(
        self, user_id: str, material_id: int, *, for_update: bool = False
    ) -> UserProgressRow | None:
        stmt = select(UserProgressRow).where(
            UserProgressRow.user_id == user_id,
            UserProgressRow.material_id == material_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return (await self._session.execute(stmt)).scalar_one_or_none()


def _row_to_progress(row: UserProgressRow) -> LeafProgress:
    return LeafProgress(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        lesson_id=row.lesson_id,
        material_id=row.material_id,
        progress_kind=ProgressKind(row.progress_kind),
        progress_rate=row.progress_rate,
        spent_minutes=row.spent_minutes,
        is_completed=row.is_completed,
        last_updated_at=row.last_updated_at,
        manual_progress_rate=row.manual_progress_rate,
        completion_date=row.completion_date,
        note=row.note,
    )
