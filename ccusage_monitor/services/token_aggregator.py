"""Per-period token and cost aggregation for ccusage-monitor."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from ..cache.index import UsageIndex
from ..models.session import TokenUsage
from ..models.usage import ModelUsage
from ..utils.claude_code_processor import catalog_rank, get_model_display_name
from ..utils.time_utils import TimeUtils, to_epoch_us


class PeriodTotals:
    """Grand totals and per-model breakdown for one period."""

    def __init__(self, by_model: List[ModelUsage]):
        self.by_model = by_model
        self.tokens = TokenUsage()
        self.cost_usd = Decimal("0")
        self.message_count = 0
        for usage in by_model:
            self.tokens.add(usage.tokens)
            self.cost_usd += usage.cost_usd
            self.message_count += usage.message_count


class TokenAggregator:
    """Sums assistant usage per model over calendar periods."""

    def __init__(self, index: UsageIndex):
        self.index = index

    def aggregate_period(
        self, period: str, now: Optional[datetime] = None
    ) -> Tuple[PeriodTotals, Optional[datetime], Optional[datetime]]:
        """Aggregate a named period (today, week, month, all).

        Returns:
            (totals, period_start, period_end)

        Raises:
            ValueError: For an unknown period name
        """
        start, end = TimeUtils.period_range(period, now)
        return self.aggregate_range(start, end), start, end

    def aggregate_range(
        self, start: Optional[datetime], end: Optional[datetime]
    ) -> PeriodTotals:
        """Aggregate the half-open range [start, end); None is unbounded."""
        rows = self.index.model_totals(
            to_epoch_us(start) if start is not None else None,
            to_epoch_us(end) if end is not None else None,
        )

        # Known models in catalog order, unknown ones after in encounter order
        def sort_key(row) -> Tuple[int, int, int]:
            rank = catalog_rank(row.model)
            if rank is None:
                return (1, 0, row.first_seq)
            return (0, rank, row.first_seq)

        by_model = [
            ModelUsage(
                model=row.model,
                display_name=get_model_display_name(row.model),
                tokens=row.tokens,
                cost_usd=row.cost_usd,
                message_count=row.message_count,
            )
            for row in sorted(rows, key=sort_key)
        ]
        return PeriodTotals(by_model)
