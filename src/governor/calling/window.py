"""
Calling-window gate.

Every time-of-day decision of the governor goes through ``check_window``:
the status evaluator, the override recommender and the auto-schedule
trigger all read the same open flag and remaining minutes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable
from zoneinfo import ZoneInfo

ALL_WEEKDAYS: frozenset[int] = frozenset(range(1, 8))


@dataclass(frozen=True)
class CallingWindow:
    """Permitted calling hours of an account, in its local timezone.

    ``active_days`` holds ISO weekday numbers (1 = Monday). A window whose
    end is earlier than its start crosses midnight and belongs to the day it
    opened on.
    """

    start: time
    end: time
    active_days: frozenset[int] = field(default=ALL_WEEKDAYS)
    timezone: str = "America/New_York"

    @classmethod
    def build(
        cls,
        start: time,
        end: time,
        active_days: Iterable[int] | None = None,
        timezone: str = "America/New_York",
    ) -> "CallingWindow":
        days = frozenset(int(d) for d in active_days) if active_days is not None else ALL_WEEKDAYS
        return cls(start=start, end=end, active_days=days, timezone=timezone)

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def crosses_midnight(self) -> bool:
        return self.end < self.start


@dataclass(frozen=True)
class WindowCheck:
    """Result of evaluating a calling window at one instant."""

    is_open: bool
    remaining_minutes: int
    local_time: datetime
    closes_at: datetime | None = None
    opens_at: datetime | None = None


def _opening_day(local: datetime, window: CallingWindow) -> date | None:
    """Day whose window contains ``local``, or None when outside the hours."""
    t = local.time()
    if window.start == window.end:
        return None
    if not window.crosses_midnight:
        if window.start <= t < window.end:
            return local.date()
        return None
    if t >= window.start:
        return local.date()
    if t < window.end:
        return local.date() - timedelta(days=1)
    return None


def _close_of(day: date, window: CallingWindow) -> datetime:
    close_day = day + timedelta(days=1) if window.crosses_midnight else day
    return datetime.combine(close_day, window.end, tzinfo=window.zone)


def _next_open(local: datetime, window: CallingWindow) -> datetime | None:
    if window.start == window.end or not window.active_days:
        return None
    for offset in range(0, 8):
        day = local.date() + timedelta(days=offset)
        if day.isoweekday() not in window.active_days:
            continue
        candidate = datetime.combine(day, window.start, tzinfo=window.zone)
        if candidate > local:
            return candidate
    return None


def check_window(now: datetime, window: CallingWindow) -> WindowCheck:
    """Evaluate whether ``now`` falls inside the calling window.

    Args:
        now: Timezone-aware timestamp.
        window: The account's calling window.

    Returns:
        Open flag, whole minutes left until the window closes (0 when
        closed), and the local close / next open instants.

    Raises:
        ValueError: If ``now`` is naive.
    """
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("check_window requires a timezone-aware timestamp")

    local = now.astimezone(window.zone)
    day = _opening_day(local, window)

    if day is None or day.isoweekday() not in window.active_days:
        return WindowCheck(
            is_open=False,
            remaining_minutes=0,
            local_time=local,
            opens_at=_next_open(local, window),
        )

    closes_at = _close_of(day, window)
    remaining = max(0, int((closes_at - local).total_seconds() // 60))
    return WindowCheck(
        is_open=True,
        remaining_minutes=remaining,
        local_time=local,
        closes_at=closes_at,
    )


def local_today(now: datetime, timezone: str) -> date:
    """Calendar date of ``now`` in the given zone."""
    return now.astimezone(ZoneInfo(timezone)).date()


def local_day_bounds(now: datetime, timezone: str) -> tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) of the local day containing ``now``."""
    zone = ZoneInfo(timezone)
    today = now.astimezone(zone).date()
    start = datetime.combine(today, time(0, 0), tzinfo=zone)
    end = datetime.combine(today + timedelta(days=1), time(0, 0), tzinfo=zone)
    return start, end
