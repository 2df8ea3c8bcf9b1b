"""Week-to-date usage tracking for ccusage-monitor.

Weeks run Sunday through Saturday in local time and reset at local
midnight on Sunday.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from ..cache.index import UsageIndex
from ..models.limits import PlanLimit
from ..models.usage import UsageSummary, WeekDay, WeeklyUsage
from ..utils.time_utils import DAY_NAMES, TimeUtils


class WeeklyUsageTracker:
    """Builds the Sunday-first seven-day view of prompt activity."""

    def __init__(self, index: UsageIndex, plan: PlanLimit):
        self.index = index
        self.plan = plan

    def build(self, now: datetime) -> WeeklyUsage:
        """Prompt counts for each day of the week containing ``now``."""
        today = TimeUtils.local_date(now)
        week_start = TimeUtils.sunday_on_or_before(today)
        week_end = week_start + timedelta(days=6)
        counts = self.index.prompts_by_day(week_start, week_end)

        days = []
        for offset in range(7):
            day = week_start + timedelta(days=offset)
            days.append(
                WeekDay(
                    date=day,
                    day_name=DAY_NAMES[offset],
                    prompt_count=counts.get(day, 0),
                    is_today=day == today,
                    is_future=day > today,
                )
            )

        return WeeklyUsage(
            days=days,
            week_start=week_start,
            estimated_weekly_limit=self.plan.weekly_prompt_limit,
        )

    @staticmethod
    def week_usage_percent(weekly: WeeklyUsage) -> float:
        """Share of the weekly allowance used so far (never negative, may exceed 100)."""
        if weekly.estimated_weekly_limit <= 0:
            return 0.0
        percent = 100.0 * weekly.prompts_to_date / weekly.estimated_weekly_limit
        return round(max(0.0, percent), 2)

    @staticmethod
    def days_until_reset(today: date) -> int:
        return TimeUtils.days_until_reset(today)

    @staticmethod
    def next_reset_date(today: date) -> date:
        return TimeUtils.next_reset_date(today)

    @staticmethod
    def summary(week_usage_percent: float, now: Optional[datetime] = None) -> UsageSummary:
        """Minimal summary for lightweight consumers."""
        if now is None:
            now = TimeUtils.now()
        return UsageSummary(
            week_usage_percent=week_usage_percent,
            days_left_until_reset=WeeklyUsageTracker.days_until_reset(TimeUtils.local_date(now)),
        )
