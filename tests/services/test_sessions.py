from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from app.repos.memory import InMemoryDatabase
from app.services.errors import (
    NotFoundReason,
    ProgressNotFoundError,
    ProgressValidationError,
    ValidationReason,
)
from app.services.sessions import session_minutes
from tests.conftest import make_coordinator

T0 = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def test_session_minutes_round_down() -> None:
    assert session_minutes(T0, datetime(2026, 3, 2, 10, 45, 59, tzinfo=UTC)) == 45
    assert session_minutes(T0, datetime(2026, 3, 2, 10, 0, 30, tzinfo=UTC)) == 0


@pytest.mark.parametrize(
    ("started_at", "ended_at"),
    [
        (T0, T0),
        (datetime(2026, 3, 2, 11, 0, tzinfo=UTC), T0),
        (datetime(2026, 3, 2, 10, 0), datetime(2026, 3, 2, 11, 0)),
    ],
)
def test_session_minutes_rejects_bad_ranges(
    started_at: datetime, ended_at: datetime
) -> None:
    with pytest.raises(ProgressValidationError) as exc_info:
        session_minutes(started_at, ended_at)
    assert exc_info.value.reason is ValidationReason.INVALID_RANGE


def test_record_session_updates_streak_and_daily_activity(
    db: InMemoryDatabase,
) -> None:
    coordinator = make_coordinator(db)
    ended = datetime(2026, 3, 2, 10, 40, tzinfo=UTC)
    result = asyncio.run(coordinator.record_session("u1", T0, ended, 1000))
    assert result.session.id > 0
    assert result.session.minutes == 40
    assert result.session.material_id == 1000
    assert result.streak.current_streak_days == 1
    day = db.tables.daily_activity[("u1", ended.date())]
    assert day.session_minutes == 40
    assert day.update_count == 0


def test_record_session_rejects_unknown_material(db: InMemoryDatabase) -> None:
    coordinator = make_coordinator(db)
    ended = datetime(2026, 3, 2, 10, 40, tzinfo=UTC)
    with pytest.raises(ProgressNotFoundError) as exc_info:
        asyncio.run(coordinator.record_session("u1", T0, ended, 4242))
    assert exc_info.value.reason is NotFoundReason.MATERIAL_NOT_FOUND
    assert db.tables.sessions == []
    assert db.tables.streaks == {}
