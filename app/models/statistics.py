from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date
from decimal import Decimal


class Granularity(str, enum.Enum):
    DAY = "day"
    WEEK = "week"  # ISO weeks, Monday start
    MONTH = "month"


@dataclass(frozen=True, slots=True)
class TimeSeriesPoint:
    bucket_date: date  # first calendar day of the bucket
    spent_minutes: int
    completed_material_count: int
    average_progress_rate: Decimal


@dataclass(frozen=True, slots=True)
class StudyStatistics:
    user_id: str
    start_date: date
    end_date: date
    total_spent_minutes: int
    total_session_minutes: int
    active_days: int
    completed_materials: int
    update_count: int
    average_minutes_per_active_day: Decimal
    average_progress_rate: Decimal
    current_streak_days: int
    longest_streak_days: int
