# src/cli/runner.py

"""Headless CLI commands built on the poll cycle and the JSON store."""

import json
import logging
import sys
from datetime import datetime, timezone

from rich.console import Console
from rich.table import Table

from src.config.settings import Settings
from src.models.price_reading import FUEL_LABELS, FUEL_TYPES, PriceReading
from src.models.station import Station
from src.services.pattern_analyzer import (
    InsufficientData,
    analyze_weekly_patterns,
    history_stats,
)
from src.services.poll_cycle import OrchestratorContext, PollCycle
from src.storage.json_store import JsonStore

logger = logging.getLogger("fuel_tracker.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def _fmt(value: float | None) -> str:
    return f"{value:.3f} €" if value is not None else "—"


def _local(moment: datetime | None) -> str:
    if moment is None:
        return "—"
    return moment.astimezone(Settings.TIMEZONE).strftime("%d.%m. %H:%M")


def _readings_to_dicts(
    rows: list[tuple[Station, PriceReading | None]],
) -> list[dict[str, object]]:
    """Serialise station/reading pairs to plain dicts for JSON output."""
    return [
        {
            "station": station.display_name,
            "url": station.url,
            "timestamp": (
                reading.timestamp.isoformat() if reading else None
            ),
            "prices": reading.prices.to_dict() if reading else None,
        }
        for station, reading in rows
    ]


def _print_prices(
    rows: list[tuple[Station, PriceReading | None]],
    title: str,
    changes: dict[str, list[str]] | None = None,
) -> None:
    """Render a Rich table of the latest prices to stdout."""
    table = Table(title=title, show_lines=True, title_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Station", max_width=40)
    for fuel in FUEL_TYPES:
        table.add_column(FUEL_LABELS[fuel], justify="right", style="green")
    table.add_column("Updated", justify="center", style="dim")
    if changes is not None:
        table.add_column("Changes", style="yellow")

    for idx, (station, reading) in enumerate(rows, 1):
        prices = [
            _fmt(reading.prices.get(f) if reading else None)
            for f in FUEL_TYPES
        ]
        row = [
            str(idx),
            station.display_name,
            *prices,
            _local(reading.timestamp if reading else None),
        ]
        if changes is not None:
            row.append("\n".join(changes.get(station.station_id, [])) or "—")
        table.add_row(*row)

    Console().print(table)


def _emit(
    rows: list[tuple[Station, PriceReading | None]],
    output_format: str,
    title: str,
    changes: dict[str, list[str]] | None = None,
) -> None:
    if output_format == "json":
        json.dump(
            _readings_to_dicts(rows), sys.stdout, ensure_ascii=False, indent=2,
        )
        sys.stdout.write("\n")
    else:
        _print_prices(rows, title, changes)


async def run_check(
    context: OrchestratorContext, output_format: str = "table",
) -> int:
    """Run one poll cycle and print what it found."""
    _err.print("[bold]Checking station prices...[/bold]")
    report = await PollCycle(context).run_once()
    if report is None:
        _err.print("[yellow]A poll cycle is already running.[/yellow]")
        return 1

    for name in report.closed:
        _err.print(f"[dim]Closed, skipped: {name}[/dim]")
    for name in report.failed:
        _err.print(f"[red]Failed: {name}[/red]")
    _err.print(
        f"[green]✓ {len(report.updates)} updated, "
        f"{len(report.changed)} changed, "
        f"{report.alerts_sent} alerts sent[/green]"
    )

    rows = [(u.station, u.reading) for u in report.updates]
    changes = {u.station.station_id: u.changes for u in report.updates}
    _emit(rows, output_format, "Price Check", changes)
    return 0 if report.updates else 1


def run_prices(store: JsonStore, output_format: str = "table") -> int:
    """Print the stored latest prices without fetching."""
    stations = store.load_stations()
    if not stations:
        _err.print("[yellow]No stations configured.[/yellow]")
        return 1
    history = store.load_history()
    rows = [(s, history.latest(s.station_id)) for s in stations]
    _emit(rows, output_format, "Last Known Prices")
    return 0


def run_analytics(store: JsonStore, fuel_type: str = "diesel") -> int:
    """Print the weekly pattern analysis for every station."""
    stations = store.load_stations()
    history = store.load_history()
    now = datetime.now(timezone.utc)
    console = Console()

    for station in stations:
        result = analyze_weekly_patterns(
            history, station.station_id, fuel_type, now=now,
        )
        if isinstance(result, InsufficientData):
            console.print(
                f"[bold]{station.display_name}[/bold]: "
                f"[yellow]{result.message}[/yellow]"
            )
            continue

        table = Table(
            title=(
                f"{station.display_name} — {fuel_type.upper()} "
                f"({result.total_observations} readings, "
                f"{result.window_days} days)"
            ),
            show_lines=True,
            title_style="bold cyan",
        )
        table.add_column("#", style="dim", width=4)
        table.add_column("Day")
        table.add_column("Hour", justify="right")
        table.add_column("Avg price", justify="right", style="green")
        table.add_column("Readings", justify="right", style="dim")
        for idx, slot in enumerate(result.top_slots, 1):
            table.add_row(
                str(idx), slot.day, f"{slot.hour}:00",
                _fmt(slot.avg_price), str(slot.observations),
            )
        console.print(table)
        console.print(
            f"Best day: [bold]{result.best_day.day}[/bold] "
            f"({_fmt(result.best_day.avg_price)}), "
            f"best hour: [bold]{result.best_hour.hour}:00[/bold] "
            f"({_fmt(result.best_hour.avg_price)})\n"
        )
    return 0


def run_stats(store: JsonStore) -> int:
    """Print history database statistics."""
    stats = history_stats(
        store.load_history(), store.load_stations(), store.history_size_kb(),
    )
    table = Table(
        title="History Database", show_lines=True, title_style="bold cyan",
    )
    table.add_column("Station", style="bold")
    table.add_column("Readings", justify="right")
    table.add_column("Latest", justify="center", style="dim")
    for station in stats.stations:
        table.add_row(station.name, str(station.readings), _local(station.newest))
    Console().print(table)
    _err.print(
        f"Total readings: {stats.total_readings}  "
        f"Period: {stats.period_days} days  "
        f"Size: {stats.size_kb:.2f} KB  "
        f"Last check: {_local(stats.last_check)}"
    )
    return 0


async def run_health_check(store: JsonStore) -> int:
    """Run a connectivity health check on all station pages."""
    from src.services.health_checker import HealthChecker

    _err.print("[bold]Running station health check...[/bold]")
    checker = HealthChecker(store.load_stations())
    results = await checker.check_all()

    table = Table(
        title="Station Health Check",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Station", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Notes", style="dim")

    any_down = False
    for r in results:
        if r.status == "ok":
            status = "[green]✅ OK[/green]"
        elif r.status == "slow":
            status = "[yellow]⚠️  SLOW[/yellow]"
        else:
            status = "[red]❌ DOWN[/red]"
            any_down = True

        latency = f"{r.latency_ms:.0f}ms" if r.latency_ms > 0 else "—"
        table.add_row(r.station, status, latency, r.message)

    Console().print(table)
    return 1 if any_down else 0


def run_chart(store: JsonStore, station_url: str) -> int:
    """Export a Plotly chart for one station."""
    from src.storage.chart_exporter import export_station_chart

    try:
        path = export_station_chart(
            station_url, store.load_history(), open_browser=False,
        )
    except ImportError:
        _err.print(
            "[red]plotly is not installed "
            "(pip install 'fuel-tracker[charts]')[/red]"
        )
        return 1
    if path is None:
        _err.print("[yellow]Not enough history for a chart.[/yellow]")
        return 1
    _err.print(f"[green]Chart saved → {path}[/green]")
    return 0


def run_export_csv(store: JsonStore) -> int:
    """Export the retained history as CSV."""
    try:
        path = store.export_history_csv()
    except OSError as exc:
        logger.error("CSV export failed: %s", exc, exc_info=True)
        _err.print(f"[red]Export failed: {exc}[/red]")
        return 1
    _err.print(f"[green]History exported → {path}[/green]")
    return 0
