from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Protocol

from app.models.progress import HistoryEntry
from app.repos.memory import InMemoryDatabase


class HistoryRepo(Protocol):
    """Append-only.  There is intentionally no update or delete method;
    history rows disappear only when their leaf is cascade-deleted."""

    async def append(self, entry: HistoryEntry) -> HistoryEntry: ...
    async def list_for_progress(
        self, progress_id: int, limit: int, offset: int = 0
    ) -> list[HistoryEntry]: ...
    async def lock_idempotency_key(
        self, changed_by: str, idempotency_key: str
    ) -> None: ...
    async def find_by_idempotency_key(
        self, changed_by: str, idempotency_key: str, since: datetime
    ) -> HistoryEntry | None: ...
    async def list_for_user_between(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[HistoryEntry]: ...


def _newest_first(entry: HistoryEntry) -> tuple[datetime, int]:
    return (entry.created_at, entry.id)


class InMemoryHistoryRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def lock_idempotency_key(
        self, changed_by: str, idempotency_key: str
    ) -> None:
        # the unit of work already holds the database lock
        return None

    async def append(self, entry: HistoryEntry) -> HistoryEntry:
        stored = replace(entry, id=self._db.next_id("progress_history"))
        self._db.tables.history.append(stored)
        return stored

    async def list_for_progress(
        self, progress_id: int, limit: int, offset: int = 0
    ) -> list[HistoryEntry]:
        rows = [e for e in self._db.tables.history if e.progress_id == progress_id]
        rows.sort(key=_newest_first, reverse=True)
        return rows[offset : offset + limit]

    async def find_by_idempotency_key(
        self, changed_by: str, idempotency_key: str, since: datetime
    ) -> HistoryEntry | None:
        matches = [
            e
            for e in self._db.tables.history
            if e.idempotency_key == idempotency_key
            and e.changed_by == changed_by
            and e.created_at >= since
        ]
        if not matches:
            return None
        return max(matches, key=_newest_first)

    async def list_for_user_between(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[HistoryEntry]:
        """Entries on the user's leaves with start <= created_at < end, oldest first."""
        progress_ids = {
            p.id for (owner, _), p in self._db.tables.progress.items() if owner == user_id
        }
        rows = [
            e
            for e in self._db.tables.history
            if e.progress_id in progress_ids and start <= e.created_at < end
        ]
        rows.sort(key=_newest_first)
        return rows
