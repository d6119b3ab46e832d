"""Due-schedule selection for the periodic digest run.

A schedule is due when it is active, today falls inside its
``start_date``..``end_date`` range, and its time of day lies inside the
lookback window ``[now - lookback, now]``.

Times of day are handled as minutes since midnight. In the default (legacy)
mode the window is a plain ``start <= t <= end`` range, which is equivalent to
comparing zero-padded ``HH:MM`` strings: when subtracting the lookback wraps
past midnight, ``start > end`` and the window matches nothing. Setting
``wrap_midnight`` treats the window as circular instead.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable

from app.models.schedule import Schedule, ScheduleStatus

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_time_of_day(value: str) -> int:
    """Parse ``HH:MM`` (optionally ``HH:MM:SS``) into minutes since midnight."""
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time of day: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time of day: {value!r}")
    return hour * 60 + minute


@dataclass(frozen=True)
class DueWindow:
    """Time-of-day window evaluated for a single run."""

    start_minute: int
    end_minute: int
    lookback_minutes: int
    wrap_midnight: bool = False

    @property
    def start(self) -> str:
        return format_minutes(self.start_minute)

    @property
    def end(self) -> str:
        return format_minutes(self.end_minute)

    def contains(self, minute: int) -> bool:
        if not self.wrap_midnight:
            return self.start_minute <= minute <= self.end_minute
        if self.lookback_minutes >= MINUTES_PER_DAY:
            return True
        if self.start_minute <= self.end_minute:
            return self.start_minute <= minute <= self.end_minute
        return minute >= self.start_minute or minute <= self.end_minute

    def as_dict(self) -> dict[str, str]:
        return {"start": self.start, "end": self.end}


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def compute_due_window(now: datetime, lookback_minutes: int, wrap_midnight: bool = False) -> DueWindow:
    if lookback_minutes < 0:
        raise ValueError("lookback_minutes must be non-negative")
    now = _as_utc(now)
    start = now - timedelta(minutes=lookback_minutes)
    return DueWindow(
        start_minute=start.hour * 60 + start.minute,
        end_minute=now.hour * 60 + now.minute,
        lookback_minutes=lookback_minutes,
        wrap_midnight=wrap_midnight,
    )


def is_within_date_range(schedule: Schedule, today: date) -> bool:
    if schedule.start_date > today:
        return False
    return schedule.end_date is None or schedule.end_date >= today


def select_due(
    now: datetime,
    schedules: Iterable[Schedule],
    lookback_minutes: int,
    wrap_midnight: bool = False,
) -> list[Schedule]:
    """Return the schedules due in the run happening at ``now``.

    Pure: no schedule is modified. Input order is preserved but callers must
    not rely on it.
    """
    window = compute_due_window(now, lookback_minutes, wrap_midnight)
    today = _as_utc(now).date()
    return [s for s in schedules if _is_due(s, today, window)]


def _is_due(schedule: Schedule, today: date, window: DueWindow) -> bool:
    if schedule.status != ScheduleStatus.ACTIVE:
        return False
    if not is_within_date_range(schedule, today):
        return False
    try:
        minute = parse_time_of_day(schedule.time_of_day)
    except (AttributeError, ValueError):
        logger.warning("Schedule %s has unparseable time_of_day %r", schedule.id, schedule.time_of_day)
        return False
    return window.contains(minute)
