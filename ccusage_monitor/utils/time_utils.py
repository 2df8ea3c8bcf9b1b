"""Local-calendar time helpers for ccusage-monitor.

All calendar bucketing (days, Sunday-based weeks, months) happens in the
local timezone; rolling windows use absolute instants.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple

PERIODS = ("today", "week", "month", "all")

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


class TimeUtils:
    """Calendar and timestamp utilities."""

    @staticmethod
    def now() -> datetime:
        """Current time as an aware datetime in the local timezone."""
        return datetime.now().astimezone()

    @staticmethod
    def local_date(moment: datetime) -> date:
        """Local calendar date of an instant."""
        return moment.astimezone().date()

    @staticmethod
    def local_midnight(day: date) -> datetime:
        """Aware datetime for local midnight at the start of a date."""
        return datetime.combine(day, time.min).astimezone()

    @staticmethod
    def sunday_on_or_before(day: date) -> date:
        """Most recent Sunday on or before a date."""
        days_since_sunday = (day.weekday() + 1) % 7
        return day - timedelta(days=days_since_sunday)

    @staticmethod
    def saturday_on_or_after(day: date) -> date:
        """Saturday closing the Sunday-based week containing a date."""
        return TimeUtils.sunday_on_or_before(day) + timedelta(days=6)

    @staticmethod
    def days_until_reset(day: date) -> int:
        """Days until the weekly reset (next Sunday, never today).

        Sunday returns 7; any other day returns days to the coming Sunday.
        """
        days_since_sunday = (day.weekday() + 1) % 7
        if days_since_sunday == 0:
            return 7
        return 7 - days_since_sunday

    @staticmethod
    def next_reset_date(day: date) -> date:
        """Date of the next weekly reset."""
        return day + timedelta(days=TimeUtils.days_until_reset(day))

    @staticmethod
    def period_range(
        period: str, now: Optional[datetime] = None
    ) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Resolve a named period to a half-open [start, end) range.

        Args:
            period: One of today, week, month, all
            now: Reference time (default: now)

        Returns:
            (start, end); None means unbounded on that side

        Raises:
            ValueError: For an unknown period name
        """
        if now is None:
            now = TimeUtils.now()
        today = TimeUtils.local_date(now)

        if period == "today":
            return TimeUtils.local_midnight(today), None
        if period == "week":
            return TimeUtils.local_midnight(TimeUtils.sunday_on_or_before(today)), None
        if period == "month":
            return TimeUtils.local_midnight(today.replace(day=1)), None
        if period == "all":
            return None, None
        raise ValueError(f"Unknown period: {period!r} (expected one of {', '.join(PERIODS)})")

    @staticmethod
    def date_range_bounds(
        start_date: Optional[date], end_date: Optional[date]
    ) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Convert an inclusive local date range into a half-open instant range."""
        start = TimeUtils.local_midnight(start_date) if start_date else None
        end = (
            TimeUtils.local_midnight(end_date + timedelta(days=1)) if end_date else None
        )
        return start, end


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_us(moment: datetime) -> int:
    """Exact microseconds since the Unix epoch for an aware datetime."""
    return (moment - EPOCH) // timedelta(microseconds=1)


def from_epoch_us(value: int) -> datetime:
    """Aware UTC datetime from microseconds since the Unix epoch."""
    return EPOCH + timedelta(microseconds=value)
