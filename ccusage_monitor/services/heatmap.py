"""Activity heatmap aggregation for ccusage-monitor."""

from datetime import datetime, timedelta
from typing import List

from ..cache.index import UsageIndex
from ..models.usage import DailyActivity
from ..utils.time_utils import TimeUtils

HEATMAP_WEEKS = 12
HEATMAP_DAYS = HEATMAP_WEEKS * 7


class HeatmapAggregator:
    """Daily prompt counts over the last twelve Sunday-based weeks."""

    def __init__(self, index: UsageIndex):
        self.index = index

    def build(self, now: datetime) -> List[DailyActivity]:
        """One entry per date, ending on the Saturday that closes this week.

        Dates after today are present with a zero count.
        """
        today = TimeUtils.local_date(now)
        end_day = TimeUtils.saturday_on_or_after(today)
        start_day = end_day - timedelta(days=HEATMAP_DAYS - 1)
        counts = self.index.prompts_by_day(start_day, end_day)

        return [
            DailyActivity(date=day, prompt_count=counts.get(day, 0) if day <= today else 0)
            for day in (start_day + timedelta(days=i) for i in range(HEATMAP_DAYS))
        ]
