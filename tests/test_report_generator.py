"""Tests for report rendering."""

from datetime import date, timedelta
from decimal import Decimal

from rich.console import Console

from ccusage_monitor.models.session import TokenUsage
from ccusage_monitor.models.usage import (
    DailyActivity,
    ModelUsage,
    QuotaInfo,
    UsageStats,
    UsageSummary,
    WeekDay,
    WeeklyUsage,
)
from ccusage_monitor.services.report_generator import (
    ReportGenerator,
    format_tokens,
    heatmap_level,
    progress_bar,
)
from ccusage_monitor.utils.time_utils import TimeUtils


def sample_stats() -> UsageStats:
    week_start = date(2025, 3, 9)
    return UsageStats(
        period="today",
        period_start=TimeUtils.local_midnight(date(2025, 3, 12)),
        total_tokens=TokenUsage(input=1200, output=300),
        total_cost_usd=Decimal("1.25"),
        by_model=[
            ModelUsage(
                model="claude-opus-4-5",
                display_name="Opus 4.5",
                tokens=TokenUsage(input=1200, output=300),
                cost_usd=Decimal("1.25"),
                message_count=3,
            )
        ],
        message_count=3,
        session_count=1,
        quota=QuotaInfo(
            messages_in_window=230,
            estimated_limit=225,
            usage_percent=100.0,
            plan="Max 5x",
            week_usage_percent=8.9,
            week_limit_hours=210,
        ),
        daily_activity=[
            DailyActivity(date=week_start + timedelta(days=i), prompt_count=i % 5)
            for i in range(14)
        ],
        weekly_usage=WeeklyUsage(
            week_start=week_start,
            estimated_weekly_limit=2590,
            days=[
                WeekDay(
                    date=week_start + timedelta(days=i),
                    day_name=name,
                    prompt_count=10 * i if i <= 3 else 0,
                    is_today=i == 3,
                    is_future=i > 3,
                )
                for i, name in enumerate(["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"])
            ],
        ),
        last_updated=TimeUtils.now(),
    )


def render(renderable) -> str:
    console = Console(record=True, width=140)
    console.print(renderable)
    return console.export_text()


class TestHelpers:
    def test_format_tokens(self):
        assert format_tokens(950) == "950"
        assert format_tokens(34_500) == "34.5K"
        assert format_tokens(1_200_000) == "1.2M"

    def test_heatmap_levels(self):
        assert heatmap_level(0, 10) == 0
        assert heatmap_level(1, 100) == 1
        assert heatmap_level(10, 10) == 4

    def test_progress_bar_clamps_width(self):
        assert "150.0%" in progress_bar(150.0)
        assert progress_bar(150.0).count("█") == 16


class TestReportGenerator:
    def test_usage_report(self):
        text = render(ReportGenerator().usage_report(sample_stats()))
        assert "Opus 4.5" in text
        assert "$1.25" in text
        assert "230/225 prompts" in text
        assert "Estimated limit reached" in text
        assert "60 prompts of ~2,590" in text

    def test_heatmap_grid_has_seven_rows(self):
        text = render(ReportGenerator().create_heatmap(sample_stats().daily_activity))
        for name in ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"):
            assert name in text
        assert "26 prompts" in text

    def test_empty_sessions_table(self):
        text = render(ReportGenerator().create_sessions_table([]))
        assert "No sessions in the last day" in text

    def test_summary_panel(self):
        console = Console(record=True, width=100)
        ReportGenerator(console).display_summary(
            UsageSummary(week_usage_percent=42.0, days_left_until_reset=1)
        )
        text = console.export_text()
        assert "42.0%" in text
        assert "Resets in 1 day " in text
