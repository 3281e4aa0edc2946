"""PostgreSQL implementation of ActivityRepo."""

from __future__ import annotations

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import (
    DailyLearningActivityRow,
    LearningSessionRow,
    LearningStreakRow,
)
from app.models.activity import DailyActivity, LearningSession, StreakState


class PgActivityRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_streak(self, user_id: str) -> StreakState | None:
        row = await self._session.get(LearningStreakRow, user_id)
        if row is None:
            return None
        return _row_to_streak(row)

    async def get_streak_for_update(self, user_id: str) -> StreakState | None:
        # A user's streak row may not exist yet; the advisory lock
        # serializes its first insert as well.
        await self._session.execute(
            select(func.pg_advisory_xact_lock(func.hashtext("streak:" + user_id)))
        )
        stmt = (
            select(LearningStreakRow)
            .where(LearningStreakRow.user_id == user_id)
            .with_for_update()
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_streak(row)

    async def save_streak(self, state: StreakState) -> StreakState:
        values = {
            "current_streak_days": state.current_streak_days,
            "longest_streak_days": state.longest_streak_days,
            "last_active_date": state.last_active_date,
        }
        stmt = (
            insert(LearningStreakRow)
            .values(user_id=state.user_id, **values)
            .on_conflict_do_update(index_elements=["user_id"], set_=values)
        )
        await self._session.execute(stmt)
        return state

    async def add_daily(
        self,
        user_id: str,
        activity_date: date,
        *,
        spent_minutes: int = 0,
        session_minutes: int = 0,
        update_count: int = 0,
        completed_count: int = 0,
    ) -> DailyActivity:
        table = DailyLearningActivityRow.__table__
        stmt = (
            insert(DailyLearningActivityRow)
            .values(
                user_id=user_id,
                activity_date=activity_date,
                spent_minutes=spent_minutes,
                session_minutes=session_minutes,
                update_count=update_count,
                completed_count=completed_count,
            )
            .on_conflict_do_update(
                index_elements=["user_id", "activity_date"],
                set_={
                    "spent_minutes": table.c.spent_minutes + spent_minutes,
                    "session_minutes": table.c.session_minutes + session_minutes,
                    "update_count": table.c.update_count + update_count,
                    "completed_count": table.c.completed_count + completed_count,
                },
            )
            .returning(
                table.c.spent_minutes,
                table.c.session_minutes,
                table.c.update_count,
                table.c.completed_count,
            )
        )
        row = (await self._session.execute(stmt)).one()
        return DailyActivity(
            user_id=user_id,
            activity_date=activity_date,
            spent_minutes=row.spent_minutes,
            session_minutes=row.session_minutes,
            update_count=row.update_count,
            completed_count=row.completed_count,
        )

    async def list_daily(
        self, user_id: str, start: date, end: date
    ) -> list[DailyActivity]:
        stmt = (
            select(DailyLearningActivityRow)
            .where(
                DailyLearningActivityRow.user_id == user_id,
                DailyLearningActivityRow.activity_date >= start,
                DailyLearningActivityRow.activity_date <= end,
            )
            .order_by(DailyLearningActivityRow.activity_date)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [
            DailyActivity(
                user_id=r.user_id,
                activity_date=r.activity_date,
                spent_minutes=r.spent_minutes,
                session_minutes=r.session_minutes,
                update_count=r.update_count,
                completed_count=r.completed_count,
            )
            for r in rows
        ]

    async def add_session(self, session: LearningSession) -> LearningSession:
        row = LearningSessionRow(
            user_id=session.user_id,
            material_id=session.material_id,
            started_at=session.started_at,
            ended_at=session.ended_at,
            minutes=session.minutes,
        )
        self._session.add(row)
        await self._session.flush()
        return LearningSession(
            id=row.id,
            user_id=row.user_id,
            started_at=row.started_at,
            ended_at=row.ended_at,
            minutes=row.minutes,
            material_id=row.material_id,
        )


def _row_to_streak(row: LearningStreakRow) -> StreakState:
    return StreakState(
        user_id=row.user_id,
        current_streak_days=row.current_streak_days,
        longest_streak_days=row.longest_streak_days,
        last_active_date=row.last_active_date,
    )
