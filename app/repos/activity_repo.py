from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Protocol

from app.models.activity import DailyActivity, LearningSession, StreakState
from app.repos.memory import InMemoryDatabase


class ActivityRepo(Protocol):
    """Streak state, daily activity counters and learning sessions."""

    async def get_streak(self, user_id: str) -> StreakState | None: ...
    async def get_streak_for_update(self, user_id: str) -> StreakState | None: ...
    async def save_streak(self, state: StreakState) -> StreakState: ...
    async def add_daily(
        self,
        user_id: str,
        activity_date: date,
        *,
        spent_minutes: int = 0,
        session_minutes: int = 0,
        update_count: int = 0,
        completed_count: int = 0,
    ) -> DailyActivity: ...
    async def list_daily(
        self, user_id: str, start: date, end: date
    ) -> list[DailyActivity]: ...
    async def add_session(self, session: LearningSession) -> LearningSession: ...


class InMemoryActivityRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def get_streak(self, user_id: str) -> StreakState | None:
        return self._db.tables.streaks.get(user_id)

    async def get_streak_for_update(self, user_id: str) -> StreakState | None:
        return await self.get_streak(user_id)

    async def save_streak(self, state: StreakState) -> StreakState:
        self._db.tables.streaks[state.user_id] = state
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
        key = (user_id, activity_date)
        current = self._db.tables.daily_activity.get(
            key, DailyActivity(user_id=user_id, activity_date=activity_date)
        )
        updated = replace(
            current,
            spent_minutes=current.spent_minutes + spent_minutes,
            session_minutes=current.session_minutes + session_minutes,
            update_count=current.update_count + update_count,
            completed_count=current.completed_count + completed_count,
        )
        self._db.tables.daily_activity[key] = updated
        return updated

    async def list_daily(
        self, user_id: str, start: date, end: date
    ) -> list[DailyActivity]:
        """Rows with start <= activity_date <= end, in date order."""
        rows = [
            row
            for (owner, day), row in self._db.tables.daily_activity.items()
            if owner == user_id and start <= day <= end
        ]
        return sorted(rows, key=lambda row: row.activity_date)

    async def add_session(self, session: LearningSession) -> LearningSession:
        stored = replace(session, id=self._db.next_id("learning_sessions"))
        self._db.tables.sessions.append(stored)
        return stored
