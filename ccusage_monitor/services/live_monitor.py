"""Live dashboard for ccusage-monitor."""

import time
from typing import Optional, Sequence

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel

from ..models.usage import UsageStats
from .report_generator import ReportGenerator
from .triggers import LogWatcher, PeriodicTicker
from .usage_service import UsageService


class LiveMonitor:
    """Keeps a rich Live dashboard in sync with a UsageService."""

    def __init__(
        self,
        service: UsageService,
        console: Optional[Console] = None,
        report_generator: Optional[ReportGenerator] = None,
    ):
        """Initialize live monitor.

        Args:
            service: Usage service that owns all refresh passes
            console: Rich console for output
            report_generator: Renderer for the dashboard pieces
        """
        self.service = service
        self.console = console or Console()
        self.report_generator = report_generator or ReportGenerator(self.console)

    def generate_dashboard(self, stats: UsageStats) -> Layout:
        """Lay out header, quota, weekly view, sessions and heatmap."""
        rg = self.report_generator
        layout = Layout()
        layout.split_column(
            Layout(rg.create_header(stats), size=3),
            Layout(name="top", size=9),
            Layout(Panel(rg.create_sessions_table(stats.active_sessions), border_style="dim"), ratio=1),
            Layout(Panel(rg.create_heatmap(stats.daily_activity), border_style="dim"), size=12),
            Layout(
                Panel(
                    "[dim]Ctrl+C to quit. Quota figures are estimates.[/dim]",
                    border_style="dim",
                    padding=(0, 1),
                ),
                size=3,
            ),
        )
        layout["top"].split_row(
            Layout(rg.create_quota_panel(stats.quota), ratio=1),
            Layout(Panel(rg.create_weekly_table(stats.weekly_usage), border_style="dim"), ratio=2),
        )
        return layout

    def start_monitoring(
        self,
        roots: Sequence[str],
        refresh_interval: int = 30,
        debounce_ms: int = 500,
    ) -> None:
        """Run the dashboard until interrupted.

        Args:
            roots: Log directories to watch for changes
            refresh_interval: Seconds between timer-driven refreshes
            debounce_ms: Quiet time before a burst of log writes triggers a refresh
        """
        stats = self.service.get_usage()
        ticker = PeriodicTicker(self.service.request_refresh, refresh_interval)
        watcher = LogWatcher(roots, self.service.request_refresh, debounce_ms=debounce_ms)

        ticker.start()
        watcher.start()
        shown_generation = self.service.latest_generation
        try:
            with Live(
                self.generate_dashboard(stats),
                refresh_per_second=4,
                console=self.console,
                screen=True,
            ) as live:
                while True:
                    generation = self.service.latest_generation
                    latest = self.service.latest
                    if latest is not None and generation != shown_generation:
                        live.update(self.generate_dashboard(latest))
                        shown_generation = generation
                    time.sleep(0.1)
        except KeyboardInterrupt:
            pass  # Clean exit
        finally:
            watcher.stop()
            ticker.stop()

