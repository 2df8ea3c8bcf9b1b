"""Usage snapshot models for ccusage-monitor."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field

from .session import ActiveSession, TokenUsage


class ModelUsage(BaseModel):
    """Token and cost totals for one model over a period."""

    model: str
    display_name: str
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    cost_usd: Decimal = Field(default=Decimal("0"))
    message_count: int = 0


class QuotaInfo(BaseModel):
    """Rolling-window quota estimate.

    An approximation from local message counts, not the provider's accounting.
    """

    messages_in_window: int = 0
    window_hours: int = 5
    estimated_limit: int
    usage_percent: float = 0.0
    plan: str
    week_usage_percent: float = 0.0
    week_limit_hours: int

    @computed_field
    @property
    def utilization_status(self) -> str:
        """Return status based on the rolling-window utilization."""
        if self.usage_percent >= 100:
            return "over"
        elif self.usage_percent >= 80:
            return "warning"
        elif self.usage_percent >= 50:
            return "moderate"
        else:
            return "good"


class DailyActivity(BaseModel):
    """User prompt count for one calendar day."""

    date: date
    prompt_count: int = 0


class WeekDay(BaseModel):
    """One day of the current Sunday-based week."""

    date: date
    day_name: str
    prompt_count: int = 0
    is_today: bool = False
    is_future: bool = False


class WeeklyUsage(BaseModel):
    """Week-to-date usage, Sunday first."""

    days: List[WeekDay] = Field(default_factory=list)
    week_start: date
    estimated_weekly_limit: int

    @computed_field
    @property
    def prompts_to_date(self) -> int:
        """Prompts on days up to and including today."""
        return sum(day.prompt_count for day in self.days if not day.is_future)


class IngestStats(BaseModel):
    """State of the log ingestion behind a snapshot.

    Describes what is indexed, not what the last pass read, so it is the
    same for every pass over unchanged logs.
    """

    files_tracked: int = 0
    files_failed: int = Field(default=0, description="Files unreadable on the last pass")
    events_indexed: int = 0
    malformed_lines: int = 0
    ignored_records: int = 0
    pending_bytes: int = Field(default=0, description="Bytes of unterminated trailing lines")


class UsageStats(BaseModel):
    """Full usage snapshot for one period."""

    period: str
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    total_tokens: TokenUsage = Field(default_factory=TokenUsage)
    total_cost_usd: Decimal = Field(default=Decimal("0"))
    by_model: List[ModelUsage] = Field(default_factory=list)
    message_count: int = 0
    session_count: int = 0
    quota: QuotaInfo
    active_sessions: List[ActiveSession] = Field(default_factory=list)
    daily_activity: List[DailyActivity] = Field(default_factory=list)
    weekly_usage: WeeklyUsage
    ingest: IngestStats = Field(default_factory=IngestStats)
    last_updated: datetime


class UsageSummary(BaseModel):
    """Minimal weekly summary for lightweight consumers (e.g. a tray indicator)."""

    week_usage_percent: float = 0.0
    days_left_until_reset: int
