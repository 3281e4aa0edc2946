"""PostgreSQL unit of work: one AsyncSession, one transaction."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.repos.pg_activity_repo import PgActivityRepo
from app.repos.pg_catalog_repo import PgCatalogRepo
from app.repos.pg_history_repo import PgHistoryRepo
from app.repos.pg_progress_repo import PgLeafProgressRepo
from app.repos.pg_summary_repo import PgSummaryRepo


class PgUnitOfWork:
    """Opens a session on enter and rolls back on exit unless committed.

    Row and advisory locks taken by the repos are held until the
    transaction ends, so they span every step of a submission.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self._committed = False

    async def __aenter__(self) -> PgUnitOfWork:
        session = self._session_factory()
        self._session = session
        self._committed = False
        self.catalog = PgCatalogRepo(session)
        self.progress = PgLeafProgressRepo(session)
        self.history = PgHistoryRepo(session)
        self.summaries = PgSummaryRepo(session)
        self.activity = PgActivityRepo(session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        session = self._session
        if session is None:
            return
        try:
            if not self._committed:
                await session.rollback()
        finally:
            self._session = None
            await session.close()

    async def commit(self) -> None:
        if self._session is None:
            raise RuntimeError("unit of work is not active")
        await self._session.commit()
        self._committed = True
