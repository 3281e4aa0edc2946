"""Time-bucketed study statistics.

Time series are built from the history table: each entry carries the
minutes it added and whether it completed its material, so summing
entries per bucket never double counts cumulative leaf totals.

Calendar days are taken in the configured activity time zone.  A range
[start, end] covers start 00:00 up to (but excluding) end+1 00:00 local
time.  Every bucket in the range is emitted, including empty ones, so a
range may span at most MAX_BUCKETS buckets (a study summary at most
MAX_SUMMARY_DAYS days).  Anything larger is rejected as INVALID_RANGE.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from app.models.activity import DailyActivity, StreakState
from app.models.progress import HistoryEntry, quantize_rate
from app.models.statistics import Granularity, StudyStatistics, TimeSeriesPoint
from app.repos.unit_of_work import UnitOfWork
from app.services.aggregation import mean_rate
from app.services.errors import ProgressValidationError, ValidationReason


def local_date(moment: datetime, zone: ZoneInfo) -> date:
    return moment.astimezone(zone).date()


def parse_granularity(value: str | Granularity) -> Granularity:
    try:
        return Granularity(value)
    except ValueError:
        allowed = "|".join(g.value for g in Granularity)
        raise ProgressValidationError(
            ValidationReason.INVALID_GRANULARITY,
            f"granularity must be {allowed} (got {value!r})",
        ) from None


# One calendar day of slack at either end keeps end + 1 day and local
# midnight in any zone representable.
MIN_DATE = date.min + timedelta(days=1)
MAX_DATE = date.max - timedelta(days=1)

# Upper bound on the points one series may hold, and on the days one
# study summary may cover.
MAX_BUCKETS = 366
MAX_SUMMARY_DAYS = 366


def check_range(start: date, end: date) -> None:
    if start > end:
        raise ProgressValidationError(
            ValidationReason.INVALID_RANGE,
            f"start {start.isoformat()} is after end {end.isoformat()}",
        )
    if start < MIN_DATE or end > MAX_DATE:
        raise ProgressValidationError(
            ValidationReason.INVALID_RANGE,
            f"dates must lie between {MIN_DATE.isoformat()} and "
            f"{MAX_DATE.isoformat()}",
        )


def bucket_start(day: date, granularity: Granularity) -> date:
    if granularity is Granularity.WEEK:
        return day - timedelta(days=day.weekday())
    if granularity is Granularity.MONTH:
        return day.replace(day=1)
    return day


def next_bucket(day: date, granularity: Granularity) -> date:
    if granularity is Granularity.WEEK:
        return day + timedelta(days=7)
    if granularity is Granularity.MONTH:
        if day.month == 12:
            return date(day.year + 1, 1, 1)
        return date(day.year, day.month + 1, 1)
    return day + timedelta(days=1)


def bucket_count(start: date, end: date, granularity: Granularity) -> int:
    first = bucket_start(start, granularity)
    last = bucket_start(end, granularity)
    if granularity is Granularity.WEEK:
        return (last - first).days // 7 + 1
    if granularity is Granularity.MONTH:
        return (last.year - first.year) * 12 + last.month - first.month + 1
    return (last - first).days + 1


def local_bounds(start: date, end: date, zone: ZoneInfo) -> tuple[datetime, datetime]:
    return (
        datetime.combine(start, time.min, tzinfo=zone),
        datetime.combine(end + timedelta(days=1), time.min, tzinfo=zone),
    )


class TimeSeries:
    """Finite, restartable sequence of TimeSeriesPoint.

    Points are computed while iterating; iterating again starts over
    from the first bucket.
    """

    def __init__(
        self,
        entries: list[HistoryEntry],
        start: date,
        end: date,
        granularity: Granularity,
        zone: ZoneInfo,
    ) -> None:
        self._entries = entries
        self.start = start
        self.end = end
        self.granularity = granularity
        self._zone = zone

    def __iter__(self) -> Iterator[TimeSeriesPoint]:
        grouped: dict[date, list[HistoryEntry]] = {}
        for entry in self._entries:
            day = local_date(entry.created_at, self._zone)
            grouped.setdefault(bucket_start(day, self.granularity), []).append(entry)

        cursor = bucket_start(self.start, self.granularity)
        last = bucket_start(self.end, self.granularity)
        while True:
            yield _point(cursor, grouped.get(cursor, []))
            if cursor >= last:
                break
            cursor = next_bucket(cursor, self.granularity)


def _point(bucket_date: date, entries: list[HistoryEntry]) -> TimeSeriesPoint:
    latest_rate: dict[int, Decimal] = {}
    for entry in entries:
        # entries are oldest first; the last one seen per leaf wins
        latest_rate[entry.progress_id] = entry.progress_rate
    return TimeSeriesPoint(
        bucket_date=bucket_date,
        spent_minutes=sum(e.minutes_delta for e in entries),
        completed_material_count=sum(1 for e in entries if e.became_completed),
        average_progress_rate=mean_rate(list(latest_rate.values())),
    )


class StatisticsAggregator:
    def __init__(self, zone: ZoneInfo) -> None:
        self.zone = zone

    async def record_update(
        self,
        uow: UnitOfWork,
        user_id: str,
        activity_date: date,
        *,
        minutes_delta: int,
        became_completed: bool,
    ) -> DailyActivity:
        return await uow.activity.add_daily(
            user_id,
            activity_date,
            spent_minutes=minutes_delta,
            update_count=1,
            completed_count=1 if became_completed else 0,
        )

    async def record_session(
        self, uow: UnitOfWork, user_id: str, activity_date: date, minutes: int
    ) -> DailyActivity:
        return await uow.activity.add_daily(
            user_id, activity_date, session_minutes=minutes
        )

    async def bucket(
        self,
        uow: UnitOfWork,
        user_id: str,
        start: date,
        end: date,
        granularity: str | Granularity,
    ) -> TimeSeries:
        resolved = parse_granularity(granularity)
        check_range(start, end)
        count = bucket_count(start, end, resolved)
        if count > MAX_BUCKETS:
            raise ProgressValidationError(
                ValidationReason.INVALID_RANGE,
                f"{start.isoformat()}..{end.isoformat()} spans {count} "
                f"{resolved.value} buckets; at most {MAX_BUCKETS} are allowed",
            )
        lower, upper = local_bounds(start, end, self.zone)
        entries = await uow.history.list_for_user_between(user_id, lower, upper)
        return TimeSeries(entries, start, end, resolved, self.zone)

    async def summarize(
        self,
        uow: UnitOfWork,
        user_id: str,
        start: date,
        end: date,
        streak: StreakState,
    ) -> StudyStatistics:
        check_range(start, end)
        days_covered = (end - start).days + 1
        if days_covered > MAX_SUMMARY_DAYS:
            raise ProgressValidationError(
                ValidationReason.INVALID_RANGE,
                f"{start.isoformat()}..{end.isoformat()} covers {days_covered} "
                f"days; at most {MAX_SUMMARY_DAYS} are allowed",
            )
        days = await uow.activity.list_daily(user_id, start, end)
        lower, upper = local_bounds(start, end, self.zone)
        entries = await uow.history.list_for_user_between(user_id, lower, upper)

        total_spent = sum(d.spent_minutes for d in days)
        total_session = sum(d.session_minutes for d in days)
        active_days = sum(
            1 for d in days if d.update_count > 0 or d.session_minutes > 0
        )
        if active_days:
            per_day = quantize_rate(
                Decimal(total_spent + total_session) / active_days
            )
        else:
            per_day = quantize_rate(Decimal(0))

        latest_rate: dict[int, Decimal] = {}
        for entry in entries:
            latest_rate[entry.progress_id] = entry.progress_rate

        return StudyStatistics(
            user_id=user_id,
            start_date=start,
            end_date=end,
            total_spent_minutes=total_spent,
            total_session_minutes=total_session,
            active_days=active_days,
            completed_materials=sum(d.completed_count for d in days),
            update_count=sum(d.update_count for d in days),
            average_minutes_per_active_day=per_day,
            average_progress_rate=mean_rate(list(latest_rate.values())),
            current_streak_days=streak.current_streak_days,
            longest_streak_days=streak.longest_streak_days,
        )
