from __future__ import annotations

from datetime import date, timedelta

from app.models.activity import StreakState
from app.repos.unit_of_work import UnitOfWork


def advance(state: StreakState, activity_date: date) -> StreakState:
    """Apply one day of activity to a streak.

    Same day: unchanged.  Next day: +1.  Any longer gap: back to 1.
    A date before last_active_date is a late or replayed event and is
    ignored.
    """
    last = state.last_active_date
    if last is None:
        current = 1
    elif activity_date == last:
        return state
    elif activity_date < last:
        return state
    elif activity_date == last + timedelta(days=1):
        current = state.current_streak_days + 1
    else:
        current = 1
    return StreakState(
        user_id=state.user_id,
        current_streak_days=current,
        longest_streak_days=max(state.longest_streak_days, current),
        last_active_date=activity_date,
    )


class StreakTracker:
    async def record_activity(
        self, uow: UnitOfWork, user_id: str, activity_date: date
    ) -> StreakState:
        state = await uow.activity.get_streak_for_update(user_id)
        if state is None:
            state = StreakState(user_id=user_id)
        updated = advance(state, activity_date)
        if updated is state:
            return state
        return await uow.activity.save_streak(updated)

    async def get(self, uow: UnitOfWork, user_id: str) -> StreakState:
        state = await uow.activity.get_streak(user_id)
        return state if state is not None else StreakState(user_id=user_id)
