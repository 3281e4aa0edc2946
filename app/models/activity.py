from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta


@dataclass(frozen=True, slots=True)
class StreakState:
    user_id: str
    current_streak_days: int = 0
    longest_streak_days: int = 0
    last_active_date: date | None = None

    def is_alive(self, today: date) -> bool:
        """True while the streak can still be extended by activity today."""
        if self.last_active_date is None:
            return False
        return self.last_active_date >= today - timedelta(days=1)


@dataclass(frozen=True, slots=True)
class DailyActivity:
    """Per-user, per-calendar-day activity counters."""

    user_id: str
    activity_date: date
    spent_minutes: int = 0
    session_minutes: int = 0
    update_count: int = 0
    completed_count: int = 0


@dataclass(frozen=True, slots=True)
class LearningSession:
    id: int
    user_id: str
    started_at: datetime
    ended_at: datetime
    minutes: int
    material_id: int | None = None
