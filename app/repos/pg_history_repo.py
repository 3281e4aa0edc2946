"""PostgreSQL implementation of HistoryRepo."""

from __future__ import annotations

import hashlib
from datetime import datetime

from sqlalchemy import BigInteger, func, literal, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import ProgressHistoryRow, UserProgressRow
from app.models.progress import HistoryEntry


class PgHistoryRepo:
    """Satisfies the HistoryRepo Protocol.  Insert and select only.

    lock_idempotency_key takes a transaction-scoped advisory lock on the
    (changed_by, key) pair.  A retry that arrives while the original is
    still in flight waits for it to commit and then finds its history
    entry instead of writing a second one.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, entry: HistoryEntry) -> HistoryEntry:
        row = ProgressHistoryRow(
            progress_id=entry.progress_id,
            progress_rate=entry.progress_rate,
            spent_minutes=entry.spent_minutes,
            minutes_delta=entry.minutes_delta,
            changed_by=entry.changed_by,
            became_completed=entry.became_completed,
            note=entry.note,
            idempotency_key=entry.idempotency_key,
            request_fingerprint=entry.request_fingerprint,
            created_at=entry.created_at,
        )
        self._session.add(row)
        await self._session.flush()
        return _row_to_entry(row)

    async def list_for_progress(
        self, progress_id: int, limit: int, offset: int = 0
    ) -> list[HistoryEntry]:
        stmt = (
            select(ProgressHistoryRow)
            .where(ProgressHistoryRow.progress_id == progress_id)
            .order_by(ProgressHistoryRow.created_at.desc(), ProgressHistoryRow.id.desc())
            .limit(limit)
            .offset(offset)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_entry(r) for r in rows]

    async def lock_idempotency_key(
        self, changed_by: str, idempotency_key: str
    ) -> None:
        lock_id = _idempotency_lock_id(changed_by, idempotency_key)
        await self._session.execute(
            select(func.pg_advisory_xact_lock(literal(lock_id, BigInteger)))
        )

    async def find_by_idempotency_key(
        self, changed_by: str, idempotency_key: str, since: datetime
    ) -> HistoryEntry | None:
        stmt = (
            select(ProgressHistoryRow)
            .where(
                ProgressHistoryRow.changed_by == changed_by,
                ProgressHistoryRow.idempotency_key == idempotency_key,
                ProgressHistoryRow.created_at >= since,
            )
            .order_by(ProgressHistoryRow.created_at.desc(), ProgressHistoryRow.id.desc())
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_entry(row)

    async def list_for_user_between(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[HistoryEntry]:
        stmt = (
            select(ProgressHistoryRow)
            .join(UserProgressRow, UserProgressRow.id == ProgressHistoryRow.progress_id)
            .where(
                UserProgressRow.user_id == user_id,
                ProgressHistoryRow.created_at >= start,
                ProgressHistoryRow.created_at < end,
            )
            .order_by(ProgressHistoryRow.created_at, ProgressHistoryRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_entry(r) for r in rows]


def _row_to_entry(row: ProgressHistoryRow) -> HistoryEntry:
    return HistoryEntry(
        id=row.id,
        progress_id=row.progress_id,
        progress_rate=row.progress_rate,
        spent_minutes=row.spent_minutes,
        minutes_delta=row.minutes_delta,
        changed_by=row.changed_by,
        created_at=row.created_at,
        became_completed=row.became_completed,
        note=row.note,
        idempotency_key=row.idempotency_key,
        request_fingerprint=row.request_fingerprint,
    )


def _idempotency_lock_id(changed_by: str, idempotency_key: str) -> int:
    # Single bigint key: Postgres keeps this key space apart from the
    # (int, int) leaf locks in pg_progress_repo.
    digest = hashlib.sha256(f"{changed_by}\0{idempotency_key}".encode()).digest()
    return int.from_bytes(digest[:8], "big", signed=True)
