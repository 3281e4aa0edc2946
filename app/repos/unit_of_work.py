"""Unit of work: one transaction spanning every repo a submission touches.

Usage::

    async with uow_factory() as uow:
        leaf = await uow.progress.get_for_update(user_id, material_id)
        ...
        await uow.commit()

Leaving the block without commit(), whether normally, through an exception or
through cancellation by a timeout, rolls everything back.  Read-only
callers simply never commit.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from app.repos.activity_repo import ActivityRepo, InMemoryActivityRepo
from app.repos.catalog_repo import CatalogRepo, InMemoryCatalogRepo
from app.repos.history_repo import HistoryRepo, InMemoryHistoryRepo
from app.repos.memory import InMemoryDatabase, _Tables
from app.repos.progress_repo import InMemoryLeafProgressRepo, LeafProgressRepo
from app.repos.summary_repo import InMemorySummaryRepo, SummaryRepo


class UnitOfWork(Protocol):
    catalog: CatalogRepo
    progress: LeafProgressRepo
    history: HistoryRepo
    summaries: SummaryRepo
    activity: ActivityRepo

    async def __aenter__(self) -> UnitOfWork: ...
    async def __aexit__(self, exc_type, exc, tb) -> None: ...
    async def commit(self) -> None: ...


UnitOfWorkFactory = Callable[[], UnitOfWork]


class InMemoryUnitOfWork:
    """Serializable transaction over an InMemoryDatabase.

    Holds the database lock for the whole block and restores the entry
    snapshot unless commit() was called.
    """

    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db
        self._snapshot: _Tables | None = None
        self._committed = False
        self.catalog = InMemoryCatalogRepo(db)
        self.progress = InMemoryLeafProgressRepo(db)
        self.history = InMemoryHistoryRepo(db)
        self.summaries = InMemorySummaryRepo(db)
        self.activity = InMemoryActivityRepo(db)

    async def __aenter__(self) -> InMemoryUnitOfWork:
        await self._db.lock.acquire()
        self._snapshot = self._db.snapshot()
        self._committed = False
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if not self._committed and self._snapshot is not None:
                self._db.restore(self._snapshot)
        finally:
            self._snapshot = None
            self._db.lock.release()

    async def commit(self) -> None:
        self._committed = True
