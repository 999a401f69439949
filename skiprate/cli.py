"""
skiprate CLI - validator skip rate reports from getBlockProduction
"""

import asyncio
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .client import VIEWS, BlockProductionClient
from .config import PRESETS, ClientConfig
from .errors import BlockProductionError, ConfigurationError, InvalidSlotRangeError
from .logging_config import setup_logging
from .models import AlertSeverity, FetchResult
from .utils import (
    format_output,
    handle_error,
    percent_of,
    problematic_validators,
    record_row,
    skip_rate_style,
    truncate_string,
)

logger = logging.getLogger(__name__)

CONTEXT_SETTINGS = dict(help_option_names=['-h', '--help'])

STATUS_STYLES = {
    "Healthy": "green",
    "Warning": "yellow",
    "Degraded": "dark_orange",
    "Critical": "red",
}


def build_config(endpoint: Optional[str], config_path: Optional[str], preset: Optional[str]) -> ClientConfig:
    """Config file or preset first, then SKIPRATE_* variables, then an explicit --endpoint."""
    if config_path:
        base = ClientConfig.from_file(config_path)
    elif preset:
        base = ClientConfig.from_preset(preset, endpoint)
    elif endpoint:
        base = ClientConfig.auto(endpoint)
    else:
        base = ClientConfig()
    config = ClientConfig.from_env(base)
    if endpoint:
        config = config.with_overrides(rpc_endpoint=endpoint)
    return config


def run_client(ctx, operation):
    """Run ``operation(client)`` on a fresh client, rendering library errors."""
    console = ctx.obj['console']

    async def runner():
        async with BlockProductionClient(ctx.obj['config']) as client:
            return await operation(client)

    try:
        return asyncio.run(runner())
    except BlockProductionError as e:
        handle_error(e, console)
        ctx.exit(1)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option('--endpoint', help='RPC endpoint URL')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False), help='Path to a YAML or JSON config file')
@click.option('--preset', type=click.Choice(PRESETS), help='Configuration preset')
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--no-color', is_flag=True, help='Disable colored output')
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, endpoint, config_path, preset, debug, no_color):
    """skiprate - Solana validator skip rate analytics"""
    setup_logging(debug)

    console = Console(color_system=None if no_color else "auto")

    ctx.ensure_object(dict)
    ctx.obj['console'] = console
    ctx.obj['debug'] = debug

    try:
        ctx.obj['config'] = build_config(endpoint, config_path, preset)
    except ConfigurationError as e:
        handle_error(e, console)
        ctx.exit(1)

    logger.debug(f"CLI initialized for {ctx.obj['config'].rpc_endpoint}")


@cli.command()
@click.pass_context
def health(ctx):
    """Check that the RPC endpoint is reachable"""
    console = ctx.obj['console']
    endpoint = ctx.obj['config'].rpc_endpoint

    with console.status(f"[bold green]Connecting to {endpoint}..."):
        healthy = run_client(ctx, lambda client: client.test_connection())

    if healthy:
        console.print(f"[green]RPC endpoint {endpoint} is healthy[/green]")
    else:
        console.print(f"[red]RPC endpoint {endpoint} is not healthy[/red]")
        ctx.exit(1)


@cli.command()
@click.option('--first-slot', type=click.IntRange(min=0), help='First slot of the range')
@click.option('--last-slot', type=click.IntRange(min=0), help='Last slot of the range')
@click.option('--quiet', is_flag=True, help='Print a single summary line')
@click.option('--format', 'output_format', type=click.Choice(['table', 'json']), default='table', help='Output format')
@click.option('--output', type=click.Path(), help='Save json output to file')
@click.pass_context
def report(ctx, first_slot, last_slot, quiet, output_format, output):
    """Network block production report"""
    console = ctx.obj['console']

    if (first_slot is None) != (last_slot is None):
        handle_error(InvalidSlotRangeError("--first-slot and --last-slot must be given together"), console)
        ctx.exit(1)

    async def fetch(client):
        if first_slot is not None:
            return await client.fetch_block_production_range(first_slot, last_slot)
        return await client.fetch_block_production()

    with console.status("[bold green]Fetching block production..."):
        result = run_client(ctx, fetch)

    if output_format == 'json':
        format_output(result.model_dump(mode="json"), 'json', output, console)
    elif quiet:
        stats = result.statistics
        console.print(
            f"validators={stats.total_validators} slots={stats.total_assigned_slots} "
            f"skip_rate={stats.overall_skip_rate_percent:.2f}% perfect={stats.perfect_validators} "
            f"concerning={stats.concerning_validators} offline={stats.offline_validators}",
            highlight=False
        )
    else:
        _display_report(console, result)


@cli.command()
@click.option('--view', 'view_name', type=click.Choice(list(VIEWS) + ['high_stake']), default='concerning', help='Validator view')
@click.option('--limit', type=click.IntRange(min=1), default=20, help='Maximum number of validators')
@click.option('--format', 'output_format', type=click.Choice(['table', 'json', 'csv']), default='table', help='Output format')
@click.option('--output', type=click.Path(), help='Save output to file')
@click.pass_context
def validators(ctx, view_name, limit, output_format, output):
    """List validators from a derived view"""
    console = ctx.obj['console']

    with console.status(f"[bold green]Fetching {view_name} validators..."):
        records = run_client(ctx, lambda client: client.view(view_name))

    records = records[:limit]
    if output_format == 'table':
        _display_validators_table(console, records, view_name)
    else:
        format_output([record_row(r) for r in records], output_format, output, console)


def _display_validators_table(console: Console, records, view_name: str):
    if not records:
        console.print(f"[yellow]No validators in view '{view_name}'[/yellow]")
        return

    table = Table(title=f"Validators: {view_name}")
    table.add_column("Identity", style="cyan")
    table.add_column("Skip Rate", justify="right")
    table.add_column("Slots", justify="right")
    table.add_column("Produced", justify="right")
    table.add_column("Missed", justify="right")
    table.add_column("Category")

    for row in (record_row(r) for r in records):
        style = skip_rate_style(row["skip_rate_percent"])
        table.add_row(
            row["identity"],
            f"[{style}]{row['skip_rate_percent']:.2f}%[/{style}]",
            str(row["assigned_slots"]),
            str(row["produced_blocks"]),
            str(row["missed_slots"]),
            row["category"],
        )
    console.print(table)


def _display_report(console: Console, result: FetchResult):
    """Display the full report as panels and tables"""
    stats = result.statistics
    health = result.health
    total = stats.total_validators
    status_style = STATUS_STYLES.get(health.status.value, "white")

    console.print(Panel(
        f"[bold {status_style}]Health: {health.health_score:.1f}/100 ({health.status.value})[/bold {status_style}]",
        title="Solana Block Production", expand=False
    ))

    overview = Table(title="Network Overview")
    overview.add_column("Metric", style="cyan")
    overview.add_column("Value", style="green")
    for name, value in [
        ("Total Validators", stats.total_validators),
        ("Total Leader Slots", stats.total_assigned_slots),
        ("Total Blocks Produced", stats.total_blocks_produced),
        ("Total Missed Slots", stats.total_missed_slots),
        ("Network Skip Rate", f"{stats.overall_skip_rate_percent:.2f}%"),
        ("Network Efficiency", f"{stats.network_efficiency_percent:.2f}%"),
    ]:
        overview.add_row(name, str(value))
    console.print(overview)

    breakdown = Table(title="Validator Performance Breakdown")
    breakdown.add_column("Group", style="cyan")
    breakdown.add_column("Count", justify="right")
    breakdown.add_column("Share", justify="right")
    for name, count in [
        ("Perfect (0% skip)", stats.perfect_validators),
        ("Concerning (>5% skip)", stats.concerning_validators),
        ("Offline (100% skip)", stats.offline_validators),
        ("High activity (>1000 slots)", stats.high_stake_validators),
        ("Significant (>=50 slots)", stats.significant_validators),
    ]:
        breakdown.add_row(name, str(count), f"{percent_of(count, total):.1f}%")
    console.print(breakdown)

    analysis = Table(title="Statistical Analysis")
    analysis.add_column("Metric", style="cyan")
    analysis.add_column("Value", style="green")
    for name, value in [
        ("Average Skip Rate", stats.average_skip_rate_percent),
        ("Median Skip Rate", stats.median_skip_rate_percent),
        ("Weighted Skip Rate", stats.weighted_skip_rate_percent),
        ("95th Percentile Skip Rate", stats.skip_rate_95th_percentile),
        ("Significant Validators Skip Rate", stats.significant_validators_skip_rate_percent),
    ]:
        analysis.add_row(name, f"{value:.4f}%")
    console.print(analysis)

    distribution = Table(title="Skip Rate Distribution")
    distribution.add_column("Range", style="cyan")
    distribution.add_column("Validators", justify="right")
    distribution.add_column("Share", justify="right")
    distribution.add_column("Slots", justify="right")
    for bucket in result.distribution.buckets:
        if bucket.validator_count:
            distribution.add_row(bucket.range_label, str(bucket.validator_count),
                                 f"{bucket.percentage_of_total:.1f}%", str(bucket.total_slots))
    console.print(distribution)

    if health.alerts:
        console.print("[bold red]Network Alerts[/bold red]")
        for alert in health.alerts:
            style = "red" if alert.severity == AlertSeverity.CRITICAL else "yellow"
            console.print(f"  [{style}]{alert.severity.value.upper()}[/{style}] [{alert.category.value}] {alert.message}")
    else:
        console.print("[green]No network alerts[/green]")

    ranked = problematic_validators(result)
    if ranked:
        table = Table(title="Top Problematic Validators")
        table.add_column("#", justify="right")
        table.add_column("Identity")
        table.add_column("Skip Rate", justify="right")
        table.add_column("Slots", justify="right")
        table.add_column("Missed", justify="right")
        table.add_column("Network %", justify="right", style="cyan")
        table.add_column("Impact", justify="right")
        for i, (record, impact, share) in enumerate(ranked, start=1):
            style = skip_rate_style(record.skip_rate_percent)
            table.add_row(
                str(i),
                f"[{style}]{truncate_string(record.identity, 44)}[/{style}]",
                f"[{style}]{record.skip_rate_percent:.2f}%[/{style}]",
                str(record.assigned_slots),
                str(record.missed_slots),
                f"{share:.3f}%",
                f"{impact:.3f}",
            )
        console.print(table)
    else:
        console.print("[green]No problematic validators found[/green]")

    console.print(
        f"[dim]Slots {result.slot_range.first_slot} to {result.slot_range.last_slot} "
        f"({result.slot_range.count} slots), fetched at {result.fetched_at:%Y-%m-%d %H:%M:%S} UTC[/dim]"
    )


def main():
    cli(obj={})


if __name__ == '__main__':
    sys.exit(main())
