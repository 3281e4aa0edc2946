from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol

from app.models.progress import LeafProgress, LeafProgressFilter
from app.repos.memory import InMemoryDatabase


class LeafProgressRepo(Protocol):
    async def get(self, user_id: str, material_id: int) -> LeafProgress | None: ...
    async def get_for_update(
        self, user_id: str, material_id: int
    ) -> LeafProgress | None: ...
    async def save(self, progress: LeafProgress) -> LeafProgress: ...
    async def list_for_materials(
        self, user_id: str, material_ids: Iterable[int]
    ) -> dict[int, LeafProgress]: ...
    async def list_for_user(
        self, user_id: str, filters: LeafProgressFilter, limit: int, offset: int = 0
    ) -> tuple[list[LeafProgress], int]: ...


class InMemoryLeafProgressRepo:
    """Keyed by (user_id, material_id), like the unique index in Postgres.

    get_for_update needs no extra locking: the unit of work already holds
    the database lock.
    """

    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def get(self, user_id: str, material_id: int) -> LeafProgress | None:
        return self._db.tables.progress.get((user_id, material_id))

    async def get_for_update(
        self, user_id: str, material_id: int
    ) -> LeafProgress | None:
        return await self.get(user_id, material_id)

    async def save(self, progress: LeafProgress) -> LeafProgress:
        # id == 0 marks a row that has never been persisted
        if progress.id == 0:
            progress = replace(progress, id=self._db.next_id("user_progress"))
        self._db.tables.progress[(progress.user_id, progress.material_id)] = progress
        return progress

    async def list_for_materials(
        self, user_id: str, material_ids: Iterable[int]
    ) -> dict[int, LeafProgress]:
        found: dict[int, LeafProgress] = {}
        for material_id in material_ids:
            row = self._db.tables.progress.get((user_id, material_id))
            if row is not None:
                found[material_id] = row
        return found

    async def list_for_user(
        self, user_id: str, filters: LeafProgressFilter, limit: int, offset: int = 0
    ) -> tuple[list[LeafProgress], int]:
        """One page, most recently updated first, plus the unpaged total."""
        rows = [
            p
            for (owner, _), p in self._db.tables.progress.items()
            if owner == user_id and filters.matches(p)
        ]
        rows.sort(key=lambda p: (p.last_updated_at, p.id), reverse=True)
        return rows[offset : offset + limit], len(rows)
