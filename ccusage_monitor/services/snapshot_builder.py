"""Snapshot building for ccusage-monitor.

One refresh pass: ingest new log lines, update the usage index and the
session map, then run every aggregator to produce a UsageStats.
"""

import logging
from datetime import date, datetime
from typing import Dict, Optional, Tuple

from ..cache.index import UsageIndex
from ..config import Config, ModelPricing
from ..models.limits import PlanLimit
from ..models.usage import IngestStats, UsageStats
from ..utils.log_ingestor import LogIngestor, ScanStats
from ..utils.time_utils import TimeUtils, to_epoch_us
from .heatmap import HeatmapAggregator
from .quota_estimator import QuotaEstimator
from .session_resolver import SessionResolver
from .token_aggregator import TokenAggregator
from .weekly_tracker import WeeklyUsageTracker

logger = logging.getLogger(__name__)

CUSTOM_PERIOD = "custom"


class SnapshotBuilder:
    """Owns the ingestor, index and session map for one monitor.

    Not thread-safe; UsageService serializes access.
    """

    def __init__(
        self,
        config: Config,
        plan: PlanLimit,
        pricing_data: Optional[Dict[str, ModelPricing]] = None,
        index: Optional[UsageIndex] = None,
        ingestor: Optional[LogIngestor] = None,
    ):
        """Initialize snapshot builder.

        Args:
            config: Monitor configuration
            plan: Plan limits used for quota and weekly estimates
            pricing_data: Model pricing and context capacities
            index: Event index (default: new in-memory index)
            ingestor: Log ingestor (default: over the configured data dirs)
        """
        self.config = config
        self.plan = plan
        self.pricing_data = pricing_data or {}
        self.index = index or UsageIndex(config.index.db_path)
        self.ingestor = ingestor or LogIngestor(
            config.paths.claude_data_dirs, pricing_data=self.pricing_data
        )
        self.resolver = SessionResolver(self.pricing_data)
        self.token_aggregator = TokenAggregator(self.index)
        self.quota_estimator = QuotaEstimator(self.index, plan)
        self.weekly_tracker = WeeklyUsageTracker(self.index, plan)
        self.heatmap = HeatmapAggregator(self.index)

    def ingest(self) -> ScanStats:
        """Read new log lines into the index and session map.

        Index writes of one pass are applied together. When they fail the
        read positions are not advanced, so the next pass reads the same
        lines again.

        Raises:
            IndexAllocationError: If the index cannot hold the new events
        """
        scan = self.ingestor.scan()
        dropped = scan.dropped_files

        with self.index.transaction():
            for path in dropped:
                self.index.drop_file(path)
            self.index.add_events(scan.events, batch_size=self.config.index.batch_size)
        self.ingestor.commit(scan)

        if dropped:
            self.resolver.rebuild(self.index.iter_events())
        else:
            self.resolver.fold(scan.events)

        if scan.stats.malformed_lines:
            logger.info("Skipped %d malformed log lines", scan.stats.malformed_lines)
        return scan.stats

    def ingest_state(self) -> IngestStats:
        """What the index currently holds, for the snapshot."""
        state = self.ingestor.state()
        state.events_indexed = self.index.event_count()
        return state

    def rebuild(self) -> None:
        """Forget all state and re-read every log from the start."""
        self.ingestor.reset()
        self.index.clear()
        self.resolver.rebuild([])

    def build(
        self,
        period: str = "today",
        now: Optional[datetime] = None,
        date_range: Optional[Tuple[Optional[date], Optional[date]]] = None,
    ) -> UsageStats:
        """Aggregate the current index into a snapshot.

        Args:
            period: today, week, month or all (ignored when date_range is given)
            now: Reference time (default: now)
            date_range: Inclusive local (start_date, end_date), either side open

        Raises:
            ValueError: For an unknown period name
        """
        if now is None:
            now = TimeUtils.now()

        if date_range is not None:
            start, end = TimeUtils.date_range_bounds(*date_range)
            totals = self.token_aggregator.aggregate_range(start, end)
            period = CUSTOM_PERIOD
        else:
            totals, start, end = self.token_aggregator.aggregate_period(period, now)

        session_count = self.index.session_count(
            to_epoch_us(start) if start is not None else None,
            to_epoch_us(end) if end is not None else None,
        )

        weekly = self.weekly_tracker.build(now)
        quota = self.quota_estimator.estimate(
            now, week_usage_percent=self.weekly_tracker.week_usage_percent(weekly)
        )

        active = [
            self.resolver.to_active_session(session)
            for session in self.resolver.active(
                now, hours=self.config.monitor.active_session_hours
            )
        ]

        return UsageStats(
            period=period,
            period_start=start,
            period_end=end,
            total_tokens=totals.tokens,
            total_cost_usd=totals.cost_usd,
            by_model=totals.by_model,
            message_count=totals.message_count,
            session_count=session_count,
            quota=quota,
            active_sessions=active,
            daily_activity=self.heatmap.build(now),
            weekly_usage=weekly,
            ingest=self.ingest_state(),
            last_updated=TimeUtils.now(),
        )

    def refresh(
        self,
        period: str = "today",
        now: Optional[datetime] = None,
        date_range: Optional[Tuple[Optional[date], Optional[date]]] = None,
    ) -> UsageStats:
        """Run one full pass: ingest, then build."""
        self.ingest()
        return self.build(period, now=now, date_range=date_range)

    def close(self) -> None:
        self.index.close()
