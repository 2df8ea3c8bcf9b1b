"""Command line interface for ccusage-monitor."""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from .config import config_manager
from .services.live_monitor import LiveMonitor
from .services.report_generator import ReportGenerator
from .services.snapshot_builder import SnapshotBuilder
from .services.usage_service import RetryPolicy, UsageService
from .utils.error_handling import create_user_friendly_error
from .utils.time_utils import PERIODS
from . import __version__


def json_serializer(obj):
    """Custom JSON serializer for special types."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    elif isinstance(obj, Decimal):
        return float(obj)
    elif hasattr(obj, "isoformat"):
        return obj.isoformat()
    else:
        return str(obj)


def setup_logging(verbose: bool) -> None:
    """Route library logging through rich on stderr."""
    handler = RichHandler(
        console=Console(stderr=True), show_path=verbose, rich_tracebacks=verbose
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


def report_error(ctx: click.Context, action: str, error: Exception) -> None:
    """Print a friendly error and exit with status 1."""
    error_msg = create_user_friendly_error(error)
    click.echo(f"Error {action}: {error_msg}", err=True)
    if ctx.obj.get("verbose"):
        click.echo(f"Details: {error!r}", err=True)
    ctx.exit(1)


def echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=json_serializer))


format_option = click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Path to configuration file"
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option(
    "--plan",
    "-p",
    default=None,
    help="Subscription plan for quota estimates (pro, max5x, max20x or from limits.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool, plan: Optional[str]):
    """ccusage-monitor - Usage analytics for Claude Code.

    Reads the local Claude Code conversation logs and reports token usage,
    costs, estimated quota consumption, active sessions and activity.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = Console()
    setup_logging(verbose)

    try:
        if config:
            config_manager.config_path = config
            config_manager.reload()

        ctx.obj["config"] = config_manager.config
        ctx.obj["pricing_data"] = config_manager.load_pricing_data()
        plan_limit = config_manager.get_plan_limit(plan)

        builder = SnapshotBuilder(ctx.obj["config"], plan_limit, ctx.obj["pricing_data"])
        service = UsageService(
            builder,
            default_period=ctx.obj["config"].monitor.default_period,
            refresh_timeout=ctx.obj["config"].monitor.refresh_timeout,
        )
    except Exception as e:
        report_error(ctx, "initializing ccusage-monitor", e)
        return

    ctx.call_on_close(service.shutdown)
    ctx.obj["service"] = service
    ctx.obj["report_generator"] = ReportGenerator(ctx.obj["console"])


@cli.command()
@click.option(
    "--period",
    type=click.Choice(PERIODS),
    default=None,
    help="Reporting period (default from configuration)",
)
@click.option(
    "--start-date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Start date (YYYY-MM-DD), overrides --period",
)
@click.option(
    "--end-date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="End date (YYYY-MM-DD, inclusive), overrides --period",
)
@click.option(
    "--retries", type=int, default=5, show_default=True, help="Attempts before giving up"
)
@format_option
@click.pass_context
def usage(
    ctx: click.Context,
    period: Optional[str],
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    retries: int,
    output_format: str,
):
    """Show token usage, cost and quota estimate for a period."""
    date_range = None
    if start_date or end_date:
        date_range = (
            start_date.date() if start_date else None,
            end_date.date() if end_date else None,
        )

    try:
        stats = ctx.obj["service"].get_usage(
            period,
            retry=RetryPolicy(max_attempts=max(1, retries)),
            date_range=date_range,
        )
    except Exception as e:
        report_error(ctx, "computing usage", e)
        return

    if output_format == "json":
        echo_json(stats.model_dump())
    else:
        ctx.obj["report_generator"].display_usage(stats)


@cli.command()
@format_option
@click.pass_context
def summary(ctx: click.Context, output_format: str):
    """Show weekly usage percent and days until the weekly reset."""
    try:
        result = ctx.obj["service"].get_summary(retry=RetryPolicy())
    except Exception as e:
        report_error(ctx, "computing summary", e)
        return

    if output_format == "json":
        echo_json(result.model_dump())
    else:
        ctx.obj["report_generator"].display_summary(result)


@cli.command()
@format_option
@click.pass_context
def sessions(ctx: click.Context, output_format: str):
    """List sessions active in the last day."""
    try:
        stats = ctx.obj["service"].get_usage(retry=RetryPolicy())
    except Exception as e:
        report_error(ctx, "loading sessions", e)
        return

    if output_format == "json":
        echo_json([session.model_dump() for session in stats.active_sessions])
    else:
        ctx.obj["report_generator"].display_sessions(stats.active_sessions)


@cli.command()
@format_option
@click.pass_context
def heatmap(ctx: click.Context, output_format: str):
    """Show daily prompt activity for the last weeks."""
    try:
        stats = ctx.obj["service"].get_usage(retry=RetryPolicy())
    except Exception as e:
        report_error(ctx, "building heatmap", e)
        return

    if output_format == "json":
        echo_json([day.model_dump() for day in stats.daily_activity])
    else:
        ctx.obj["report_generator"].display_heatmap(stats.daily_activity)


@cli.command()
@click.option(
    "--interval",
    "-i",
    type=int,
    default=None,
    help="Refresh interval in seconds (default from configuration)",
)
@click.pass_context
def live(ctx: click.Context, interval: Optional[int]):
    """Start a live dashboard that refreshes as the logs change."""
    config = ctx.obj["config"]
    monitor = LiveMonitor(
        ctx.obj["service"],
        console=ctx.obj["console"],
        report_generator=ctx.obj["report_generator"],
    )
    try:
        monitor.start_monitoring(
            config.paths.claude_data_dirs,
            refresh_interval=interval or config.monitor.refresh_interval,
            debounce_ms=config.monitor.watch_debounce_ms,
        )
    except Exception as e:
        report_error(ctx, "running live dashboard", e)


def main():
    """Entry point for the CLI application."""
    cli()
