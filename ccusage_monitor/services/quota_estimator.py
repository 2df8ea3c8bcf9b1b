"""Rolling-window quota estimation for ccusage-monitor.

The provider does not expose its accounting, so the estimate counts user
prompts in the trailing window and compares them with a configured
per-plan, per-model allowance. Treat the result as a heuristic.
"""

from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from ..cache.index import UsageIndex
from ..models.limits import PlanLimit
from ..models.usage import QuotaInfo
from ..utils.claude_code_processor import MODEL_CATALOG, catalog_rank
from ..utils.time_utils import to_epoch_us


def dominant_model(model_counts: Dict[str, int]) -> Optional[str]:
    """Model with the most assistant messages; ties go to catalog order.

    Unknown models lose ties to known ones, then sort by name.
    """
    if not model_counts:
        return None

    def rank(item: Tuple[str, int]) -> Tuple[int, int, str]:
        model, count = item
        position = catalog_rank(model)
        return (-count, position if position is not None else len(MODEL_CATALOG), model)

    return min(model_counts.items(), key=rank)[0]


def usage_percent(used: int, limit: int) -> float:
    """Percentage of a limit used, clamped to [0, 100]."""
    if limit <= 0:
        return 0.0
    return max(0.0, min(100.0, 100.0 * used / limit))


class QuotaEstimator:
    """Estimates rolling-window quota usage for one plan."""

    def __init__(self, index: UsageIndex, plan: PlanLimit):
        self.index = index
        self.plan = plan

    @property
    def window_hours(self) -> int:
        return self.plan.window_hours

    def window_bounds(self, now: datetime) -> Tuple[datetime, datetime]:
        """Closed window [now - window_hours, now]."""
        return now - timedelta(hours=self.window_hours), now

    def estimate(self, now: datetime, week_usage_percent: float = 0.0) -> QuotaInfo:
        """Estimate quota usage at ``now``.

        Args:
            now: Reference time
            week_usage_percent: Weekly figure from the weekly tracker

        Returns:
            QuotaInfo for the rolling window
        """
        start, end = self.window_bounds(now)
        start_us, end_us = to_epoch_us(start), to_epoch_us(end)

        messages = self.index.prompt_count(start_us, end_us)
        model = dominant_model(self.index.assistant_model_counts(start_us, end_us))
        limit = self.plan.limit_for_model(model)

        return QuotaInfo(
            messages_in_window=messages,
            window_hours=self.window_hours,
            estimated_limit=limit,
            usage_percent=round(usage_percent(messages, limit), 2),
            plan=self.plan.label,
            week_usage_percent=week_usage_percent,
            week_limit_hours=self.plan.week_limit_hours,
        )
