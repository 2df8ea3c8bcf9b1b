"""Usage query service for ccusage-monitor.

Single owner of the snapshot builder. Every pass runs on one worker thread,
so ingestion and aggregation never overlap. Background triggers (timer
ticks, file changes) are coalesced: while a refresh is queued but not yet
started, further triggers share it.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import date
from typing import Iterator, Optional, Tuple

from pydantic import BaseModel, Field

from ..models.usage import UsageStats, UsageSummary
from ..utils.error_handling import RefreshTimeoutError
from ..utils.time_utils import PERIODS
from .snapshot_builder import SnapshotBuilder
from .weekly_tracker import WeeklyUsageTracker

logger = logging.getLogger(__name__)

DateRange = Tuple[Optional[date], Optional[date]]


class RetryPolicy(BaseModel):
    """Exponential backoff for usage queries."""

    max_attempts: int = Field(default=5, ge=1)
    base_delay: float = Field(default=1.0, ge=0, description="Seconds before the first retry")
    multiplier: float = Field(default=2.0, ge=1.0)

    def delays(self) -> Iterator[float]:
        """Sleep durations between consecutive attempts."""
        delay = self.base_delay
        for _ in range(self.max_attempts - 1):
            yield delay
            delay *= self.multiplier


NO_RETRY = RetryPolicy(max_attempts=1)


class UsageService:
    """Serialized, coalescing front end to a SnapshotBuilder."""

    def __init__(
        self,
        builder: SnapshotBuilder,
        default_period: str = "today",
        refresh_timeout: Optional[float] = None,
    ):
        """Initialize usage service.

        Args:
            builder: Snapshot builder owned by this service from now on
            default_period: Period used for background refreshes
            refresh_timeout: Default seconds a query waits for its pass
        """
        self.builder = builder
        self.default_period = default_period
        self.refresh_timeout = refresh_timeout
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="ccusage-refresh"
        )
        self._lock = threading.Lock()
        self._generation = 0
        self._pending: Optional[Future] = None
        self._pending_generation: Optional[int] = None
        self._latest: Optional[UsageStats] = None
        self._latest_generation = 0
        self._closed = False

    @property
    def latest(self) -> Optional[UsageStats]:
        """Most recent completed snapshot, if any."""
        with self._lock:
            return self._latest

    @property
    def latest_generation(self) -> int:
        with self._lock:
            return self._latest_generation

    def _submit(self, period: str, date_range: Optional[DateRange]) -> Tuple[int, Future]:
        # Caller holds self._lock
        if self._closed:
            raise RuntimeError("UsageService is shut down")
        self._generation += 1
        generation = self._generation
        future = self._executor.submit(self._run_pass, generation, period, date_range)
        return generation, future

    def _run_pass(
        self, generation: int, period: str, date_range: Optional[DateRange]
    ) -> UsageStats:
        with self._lock:
            if self._pending_generation == generation:
                # Started: later triggers must queue a fresh pass
                self._pending = None
                self._pending_generation = None

        stats = self.builder.refresh(period, date_range=date_range)

        with self._lock:
            if generation > self._latest_generation:
                self._latest = stats
                self._latest_generation = generation
            else:
                logger.debug("Discarding stale snapshot from pass %d", generation)
        return stats

    def request_refresh(self) -> Future:
        """Queue a background refresh, sharing any refresh not yet started.

        Returns:
            Future resolving to the refreshed snapshot
        """
        with self._lock:
            if self._pending is not None:
                return self._pending
            generation, future = self._submit(self.default_period, None)
            self._pending = future
            self._pending_generation = generation
        future.add_done_callback(self._log_failure)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning("Background refresh failed: %s", error)

    def get_usage(
        self,
        period: Optional[str] = None,
        retry: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        date_range: Optional[DateRange] = None,
    ) -> UsageStats:
        """Run a pass and return the snapshot for a period.

        Args:
            period: today, week, month or all (default: service default)
            retry: Backoff policy for failed passes (default: no retry)
            timeout: Seconds to wait for each attempt
            date_range: Inclusive local date range instead of a named period

        Raises:
            ValueError: For an unknown period name
            IndexAllocationError: If the index cannot be allocated (never retried)
            RefreshTimeoutError: If an attempt does not finish within ``timeout``
        """
        period = period or self.default_period
        if date_range is None and period not in PERIODS:
            raise ValueError(
                f"Unknown period: {period!r} (expected one of {', '.join(PERIODS)})"
            )
        policy = retry or NO_RETRY
        if timeout is None:
            timeout = self.refresh_timeout

        delays = policy.delays()
        attempt = 0
        while True:
            attempt += 1
            with self._lock:
                _, future = self._submit(period, date_range)
            try:
                return future.result(timeout=timeout)
            except FutureTimeoutError as e:
                raise RefreshTimeoutError(timeout) from e
            except Exception as e:
                if getattr(e, "fatal", False):
                    raise
                delay = next(delays, None)
                if delay is None:
                    raise
                logger.warning(
                    "Usage pass failed (attempt %d/%d): %s; retrying in %.1fs",
                    attempt,
                    policy.max_attempts,
                    e,
                    delay,
                )
                time.sleep(delay)

    def get_summary(self, retry: Optional[RetryPolicy] = None) -> UsageSummary:
        """Weekly usage percent and days until reset from the latest snapshot.

        Runs a pass first when no snapshot exists yet.
        """
        stats = self.latest
        if stats is None:
            stats = self.get_usage(retry=retry)
        return WeeklyUsageTracker.summary(stats.quota.week_usage_percent)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work, cancel queued passes and close the index."""
        with self._lock:
            self._closed = True
            self._pending = None
            self._pending_generation = None
        self._executor.shutdown(wait=wait, cancel_futures=True)
        if wait:
            self.builder.close()

    def __enter__(self) -> "UsageService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
