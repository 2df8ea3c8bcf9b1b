"""Report rendering for ccusage-monitor."""

from datetime import timedelta
from typing import List, Optional

from rich.columns import Columns
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models.session import ActiveSession
from ..models.usage import (
    DailyActivity,
    QuotaInfo,
    UsageStats,
    UsageSummary,
    WeeklyUsage,
)
from ..utils.time_utils import DAY_NAMES, TimeUtils

HEATMAP_LEVELS = ("dim white", "green4", "green3", "green1", "bold bright_green")


def progress_bar(percent: float, width: int = 16) -> str:
    """Text progress bar coloured by how close to the limit it is."""
    pct = max(0.0, min(100.0, percent))
    filled = int(width * pct / 100)
    bar = "█" * filled + "░" * (width - filled)
    if percent >= 90:
        color = "red"
    elif percent >= 75:
        color = "yellow"
    else:
        color = "green"
    return f"[{color}]{bar}[/{color}] {percent:.1f}%"


def format_tokens(count: int) -> str:
    """Compact token count: 1.2M, 34.5K or the raw number."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def format_duration(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    if hours:
        return f"{hours}h {mins}m"
    return f"{mins}m"


def heatmap_level(count: int, max_count: int) -> int:
    """Intensity bucket 0-4 for a day's prompt count."""
    if count <= 0 or max_count <= 0:
        return 0
    return min(4, 1 + (count * 4 - 1) // max_count)


class ReportGenerator:
    """Renders usage snapshots as rich tables and panels."""

    def __init__(self, console: Optional[Console] = None):
        """Initialize report generator.

        Args:
            console: Rich console for output
        """
        self.console = console or Console()

    # === Building blocks ===

    def create_models_table(self, stats: UsageStats) -> Table:
        """Per-model token and cost breakdown with a totals row."""
        table = Table(
            title=f"Usage by Model ({self._period_label(stats)})",
            show_header=True,
            header_style="bold blue",
            title_style="bold magenta",
        )
        table.add_column("Model", style="cyan", no_wrap=True)
        table.add_column("Messages", justify="right", style="yellow")
        table.add_column("Input", justify="right", style="white")
        table.add_column("Output", justify="right", style="white")
        table.add_column("Cache Write", justify="right", style="dim white")
        table.add_column("Cache Read", justify="right", style="dim white")
        table.add_column("Total Tokens", justify="right", style="bold blue")
        table.add_column("Cost", justify="right", style="red")

        for usage in stats.by_model:
            table.add_row(
                usage.display_name,
                f"{usage.message_count:,}",
                f"{usage.tokens.input:,}",
                f"{usage.tokens.output:,}",
                f"{usage.tokens.cache_write:,}",
                f"{usage.tokens.cache_read:,}",
                f"{usage.tokens.total:,}",
                f"${usage.cost_usd:.2f}",
            )

        if stats.by_model:
            table.add_section()
        table.add_row(
            "Total",
            f"{stats.message_count:,}",
            f"{stats.total_tokens.input:,}",
            f"{stats.total_tokens.output:,}",
            f"{stats.total_tokens.cache_write:,}",
            f"{stats.total_tokens.cache_read:,}",
            f"{stats.total_tokens.total:,}",
            f"${stats.total_cost_usd:.2f}",
            style="bold",
        )
        return table

    def create_quota_panel(self, quota: QuotaInfo) -> Panel:
        """Rolling-window and weekly quota estimate."""
        lines = [
            f"[dim]{quota.window_hours}h Window[/dim] "
            f"{quota.messages_in_window}/{quota.estimated_limit} prompts",
            progress_bar(quota.usage_percent),
            f"[dim]Week[/dim] {quota.week_usage_percent:.1f}% "
            f"[dim]of ~{quota.week_limit_hours}h[/dim]",
        ]
        if quota.utilization_status == "over":
            lines.append("[red]Estimated limit reached[/red]")
        return Panel(
            "\n".join(lines),
            title=f"[bold]Quota ({quota.plan})[/bold]",
            subtitle="[dim]estimate[/dim]",
            border_style="blue",
        )

    def create_weekly_table(self, weekly: WeeklyUsage) -> Table:
        """Sunday-first prompt counts for the current week."""
        table = Table(
            title=f"Week of {weekly.week_start:%Y-%m-%d}",
            show_header=True,
            header_style="bold blue",
            title_style="bold magenta",
        )
        for day in weekly.days:
            header = f"[reverse]{day.day_name}[/reverse]" if day.is_today else day.day_name
            table.add_column(header, justify="right")

        table.add_row(
            *[
                "[dim]-[/dim]" if day.is_future else f"{day.prompt_count:,}"
                for day in weekly.days
            ]
        )
        table.caption = (
            f"{weekly.prompts_to_date:,} prompts of ~{weekly.estimated_weekly_limit:,}"
        )
        return table

    def create_sessions_table(self, sessions: List[ActiveSession]) -> Table:
        """Recently active sessions, most recent first."""
        table = Table(
            title="Active Sessions",
            show_header=True,
            header_style="bold blue",
            title_style="bold magenta",
        )
        table.add_column("Project", style="cyan")
        table.add_column("Model", style="magenta")
        table.add_column("Last Active", style="dim cyan", no_wrap=True)
        table.add_column("Duration", justify="right")
        table.add_column("Messages", justify="right", style="yellow")
        table.add_column("Tokens", justify="right", style="bold blue")
        table.add_column("Cost", justify="right", style="red")
        table.add_column("Context Left", justify="right", style="green")
        table.add_column("Todos", justify="right")

        for session in sessions:
            table.add_row(
                session.project,
                session.model_display_name or "-",
                f"{session.last_activity.astimezone():%H:%M}",
                format_duration(session.duration_minutes),
                f"{session.message_count:,}",
                format_tokens(session.total_tokens),
                f"${session.cost_usd:.2f}",
                f"{session.context_remaining_percent:.0f}%",
                str(session.todo_count) if session.todo_count else "-",
            )

        if not sessions:
            table.caption = "No sessions in the last day"
        return table

    def create_heatmap(self, days: List[DailyActivity]) -> RenderableType:
        """Weekday-by-week grid of prompt activity."""
        table = Table(show_header=False, box=None, padding=(0, 1, 0, 0))
        table.add_column("Day", style="dim", no_wrap=True)
        weeks = [days[i : i + 7] for i in range(0, len(days), 7)]
        for _ in weeks:
            table.add_column(justify="center", no_wrap=True)

        max_count = max((day.prompt_count for day in days), default=0)
        for weekday in range(7):
            cells = []
            for week in weeks:
                if weekday >= len(week):
                    cells.append(" ")
                    continue
                level = heatmap_level(week[weekday].prompt_count, max_count)
                cells.append(f"[{HEATMAP_LEVELS[level]}]■[/{HEATMAP_LEVELS[level]}]")
            table.add_row(DAY_NAMES[weekday], *cells)

        parts: List[RenderableType] = [Text("Activity", style="bold magenta"), table]
        if days:
            total = sum(day.prompt_count for day in days)
            parts.append(
                Text(
                    f"{total:,} prompts {days[0].date:%Y-%m-%d} to {days[-1].date:%Y-%m-%d}",
                    style="dim",
                )
            )
        return Group(*parts)

    def create_header(self, stats: UsageStats) -> Panel:
        """One-line vitals for the live dashboard."""
        text = (
            f"[bold cyan]CCUSAGE MONITOR[/bold cyan]  "
            f"[dim]|[/dim]  [bold white]${stats.total_cost_usd:.2f}[/bold white] [dim]cost[/dim]  "
            f"[dim]|[/dim]  [bold white]{format_tokens(stats.total_tokens.total)}[/bold white] [dim]tokens[/dim]  "
            f"[dim]|[/dim]  [bold white]{stats.session_count}[/bold white] [dim]sessions[/dim]  "
            f"[dim]|[/dim]  [dim]{stats.last_updated.astimezone():%H:%M:%S}[/dim]"
        )
        return Panel(text, border_style="cyan", padding=(0, 1))

    # === Reports ===

    def usage_report(self, stats: UsageStats) -> RenderableType:
        """Full usage report for a period."""
        parts: List[RenderableType] = [
            self.create_models_table(stats),
            Columns(
                [self.create_quota_panel(stats.quota), self.create_weekly_table(stats.weekly_usage)]
            ),
        ]
        if stats.ingest.malformed_lines or stats.ingest.files_failed:
            parts.append(
                f"[dim]Skipped {stats.ingest.malformed_lines} malformed lines, "
                f"{stats.ingest.files_failed} unreadable files[/dim]"
            )
        return Group(*parts)

    def display_usage(self, stats: UsageStats) -> None:
        self.console.print(self.usage_report(stats))

    def display_sessions(self, sessions: List[ActiveSession]) -> None:
        self.console.print(self.create_sessions_table(sessions))

    def display_heatmap(self, days: List[DailyActivity]) -> None:
        self.console.print(self.create_heatmap(days))

    def display_summary(self, summary: UsageSummary) -> None:
        reset = TimeUtils.next_reset_date(TimeUtils.local_date(TimeUtils.now()))
        self.console.print(
            Panel(
                f"{progress_bar(summary.week_usage_percent)}\n"
                f"[dim]Resets in[/dim] {summary.days_left_until_reset} "
                f"{'day' if summary.days_left_until_reset == 1 else 'days'} "
                f"[dim]({reset:%a %Y-%m-%d})[/dim]",
                title="[bold]Weekly Usage[/bold]",
                border_style="blue",
            )
        )

    @staticmethod
    def _period_label(stats: UsageStats) -> str:
        if stats.period_start is None:
            return stats.period
        start = stats.period_start.astimezone()
        end = stats.period_end.astimezone() if stats.period_end else None
        label = f"{stats.period}, from {start:%Y-%m-%d}"
        if end is not None:
            label += f" through {end - timedelta(days=1):%Y-%m-%d}"
        return label
