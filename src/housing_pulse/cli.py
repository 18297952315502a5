"""Click-based CLI for housing-pulse.

Thin wrapper around library modules. Zero business logic; every operation
delegates to parsing, providers, or cache modules.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

console = Console(stderr=True)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from housing_pulse.core import ConfigError, load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as e:
            console.print(f"[red]Configuration error: {e}[/red]")
            raise SystemExit(2)
    return ctx.obj["config"]


def _create_cache(config):
    """Create the persistent cache and start its initialization."""
    from housing_pulse.cache import PersistentCacheStore

    cache = PersistentCacheStore(config.cache)
    cache.start()
    return cache


def _format_money(value: float | None) -> str:
    return f"${value:,.0f}" if value is not None else "N/A"


def _format_change(value: float | None) -> str:
    if value is None:
        return "N/A"
    color = "green" if value > 0 else "red" if value < 0 else "white"
    return f"[{color}]{value:+.2f}%[/{color}]"


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="HOUSING_PULSE_CONFIG",
    default=None,
    help="Path to housing-pulse.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="housing-pulse")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Housing Pulse: housing-market statistics with provider fallback."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=_LOG_FORMAT,
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console


# ---------------------------------------------------------------------------
# inspect
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--limit", "-n", type=int, default=20, help="Markets to list.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def inspect(ctx: click.Context, file: str, limit: int, output_format: str) -> None:
    """Parse a CSV file and summarize what it contains."""
    from housing_pulse.analytics import build_market_stats
    from housing_pulse.core import ParsingError
    from housing_pulse.parsing import MarketCsvParser

    config = _load_config(ctx)
    parser = MarketCsvParser(
        max_records=config.parser.max_records,
        chunk_size=config.parser.chunk_size,
    )
    text = Path(file).read_text(encoding="utf-8-sig")
    try:
        result = parser.parse(text)
    except ParsingError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)

    markets = build_market_stats(result, config.stats.lookback_window, "file")

    if output_format == "json":
        output = {
            "format": result.format.value,
            "records": len(result.records),
            "markets": len(markets),
            "truncated": result.truncated,
            "diagnostics": [d.model_dump() for d in result.diagnostics],
            "items": [m.model_dump(mode="json", exclude={"series", "rental_series"}) for m in markets[:limit]],
        }
        click.echo(json.dumps(output, indent=2, default=str))
        return

    summary = Table(title=f"{Path(file).name}")
    summary.add_column("Metric", style="bold")
    summary.add_column("Value", justify="right")
    summary.add_row("Format", result.format.value)
    summary.add_row("Records", str(len(result.records)))
    summary.add_row("Markets with values", str(len(markets)))
    summary.add_row("Rows skipped", str(len(result.diagnostics)))
    summary.add_row("Truncated", "yes" if result.truncated else "no")
    console.print(summary)

    if markets:
        _output_markets_table(markets[:limit])

    for diag in result.diagnostics[:10]:
        console.print(f"[yellow]line {diag.line}: {diag.reason}[/yellow]")
    if len(result.diagnostics) > 10:
        console.print(f"[yellow]... {len(result.diagnostics) - 10} more[/yellow]")


def _output_markets_table(markets) -> None:
    """Render market stats as a Rich table."""
    table = Table(title="Markets")
    table.add_column("ID", style="bold")
    table.add_column("Market")
    table.add_column("Current", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("Rent", justify="right")
    table.add_column("Latest")

    for m in markets:
        table.add_row(
            m.record.id,
            m.record.label,
            _format_money(m.current_value),
            _format_change(m.percent_change),
            _format_money(m.current_rent),
            str(m.latest_date or ""),
        )

    console.print(table)


# ---------------------------------------------------------------------------
# stats
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("location")
@click.option(
    "--window",
    "-w",
    type=click.Choice(["1M", "6M", "1Y", "5Y", "MAX"], case_sensitive=False),
    default="1Y",
    help="History window to display.",
)
@click.option("--refresh", is_flag=True, default=False, help="Bypass the cache.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def stats(
    ctx: click.Context,
    location: str,
    window: str,
    refresh: bool,
    output_format: str,
) -> None:
    """Show statistics for one market (zip, "City, ST", or market id)."""
    from housing_pulse.analytics import filter_series
    from housing_pulse.core import TimeWindow
    from housing_pulse.providers import ProviderFactory

    async def _run():
        config = _load_config(ctx)
        cache = _create_cache(config)
        factory = ProviderFactory(config, cache)
        try:
            chain = factory.create_chain()
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task(f"Resolving {location}...", total=None)
                result = await chain.get_stats(location, force_refresh=refresh)
            return result
        finally:
            await factory.clear()
            await cache.close()

    result = _run_async(_run())
    if result is None:
        console.print(f"[yellow]No market found for {location!r}.[/yellow]")
        raise SystemExit(1)

    tw = TimeWindow(window.upper())
    series = filter_series(result.series, tw)

    if output_format == "json":
        output = result.model_dump(mode="json", exclude={"series", "rental_series"})
        output["window"] = tw.value
        output["series"] = [p.model_dump(mode="json") for p in series]
        output["rental_series"] = [
            p.model_dump(mode="json") for p in filter_series(result.rental_series, tw)
        ]
        click.echo(json.dumps(output, indent=2, default=str))
        return

    table = Table(title=result.record.label)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Market ID", result.record.id)
    table.add_row("Current value", _format_money(result.current_value))
    table.add_row("Reference value", _format_money(result.reference_value))
    table.add_row("Change", _format_change(result.percent_change))
    table.add_row("Direction", result.direction.value)
    table.add_section()
    table.add_row(f"Samples ({tw.value})", str(len(series)))
    if series:
        table.add_row("Range", f"{series[0].date} to {series[-1].date}")
        table.add_row("Low", _format_money(min(p.value for p in series)))
        table.add_row("High", _format_money(max(p.value for p in series)))
    table.add_section()
    table.add_row("Current rent", _format_money(result.current_rent))
    table.add_row("Rent change", _format_change(result.rent_change))
    table.add_section()
    table.add_row("Provider", result.provider)
    console.print(table)


# ---------------------------------------------------------------------------
# split
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("output_dir", type=click.Path(file_okay=False))
@click.option(
    "--kind",
    type=click.Choice(["zhvi", "zori"], case_sensitive=False),
    default="zhvi",
    help="Dataset kind; home values (zhvi) also write the market index.",
)
def split(input_path: str, output_dir: str, kind: str) -> None:
    """Split a wide-format CSV into one file per market."""
    from housing_pulse.core import ParsingError
    from housing_pulse.parsing import split_wide_csv, write_market_index

    kind = kind.lower()
    try:
        result, entries = split_wide_csv(input_path, output_dir, kind)
    except ParsingError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)

    console.print(
        f"[green]Split {result.markets_processed} markets into "
        f"{result.files_created} files under {Path(output_dir) / kind}[/green]"
    )
    if kind == "zhvi":
        index_path = write_market_index(entries, output_dir)
        console.print(f"Market index: {index_path} ({len(entries)} markets)")
    for err in result.errors[:10]:
        console.print(f"[yellow]{err}[/yellow]")
    if result.errors:
        console.print(f"[yellow]{len(result.errors)} rows could not be split[/yellow]")


# ---------------------------------------------------------------------------
# cache
# ---------------------------------------------------------------------------


@cli.group()
def cache() -> None:
    """Manage the persistent cache."""


@cache.command("clear")
@click.pass_context
def cache_clear(ctx: click.Context) -> None:
    """Remove every cached entry, including persisted datasets."""
    async def _run():
        config = _load_config(ctx)
        store = _create_cache(config)
        try:
            before = await store.stats()
            await store.clear()
            return before["entries"]
        finally:
            await store.close()

    removed = _run_async(_run())
    console.print(f"[green]Cleared {removed} cache entries.[/green]")


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address.")
@click.option("--port", "-p", type=int, default=None, help="Port number.")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server."""
    import uvicorn

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting housing-pulse API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "housing_pulse.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show provider configuration and cache statistics."""
    from housing_pulse.providers import ProviderFactory

    async def _run():
        config = _load_config(ctx)
        store = _create_cache(config)
        factory = ProviderFactory(config, store)
        try:
            for kind in config.providers.chain:
                await factory.get(kind).ready()
            providers = factory.available_providers()
            cache_stats = await store.stats()
        finally:
            await factory.clear()
            await store.close()

        table = Table(title="Housing Pulse Status")
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right")

        table.add_row("Provider chain", " -> ".join(k.value for k in config.providers.chain))
        table.add_row("Lookback window", config.stats.lookback_window.value)
        table.add_section()
        for p in providers:
            state = "configured" if p.configured else "not configured"
            marker = " (active)" if p.active else ""
            table.add_row(f"{p.descriptor.name}{marker}", state)
        table.add_section()
        table.add_row("Cache path", config.cache.sqlite_path)
        table.add_row("Cache entries", str(cache_stats["entries"]))
        table.add_row("Expired entries", str(cache_stats["expired"]))

        console.print(table)

    _run_async(_run())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
