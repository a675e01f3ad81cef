# src/ui/app.py

"""Terminal dashboard for the fuel_tracker station list."""

import logging
import webbrowser
from datetime import datetime, timezone
from typing import cast

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.widgets import (
    Button,
    DataTable,
    Footer,
    Header,
    Select,
    Static,
)

from src.config.settings import Settings
from src.filters.schedule_gate import is_station_open
from src.models.price_reading import FUEL_LABELS, FUEL_TYPES, PriceReading
from src.models.station import Station
from src.services.pattern_analyzer import (
    InsufficientData,
    analyze_weekly_patterns,
)
from src.services.poll_cycle import OrchestratorContext, PollCycle
from src.storage.history_store import HistoryStore

logger = logging.getLogger("fuel_tracker.ui")


class StationDashboardApp(App[object]):
    """Latest prices per station, a manual check and weekly analytics."""

    CSS_PATH = "styles.css"

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Reload"),
        Binding("k", "check", "Check now"),
        Binding("o", "open_url", "Open page"),
        Binding("c", "copy_url", "Copy URL"),
        Binding("e", "export", "Export CSV"),
    ]

    def __init__(self, context: OrchestratorContext | None = None) -> None:
        super().__init__()
        self.context = context or OrchestratorContext.create()
        self.poll_cycle = PollCycle(self.context)
        self.stations: list[Station] = []
        self.history = HistoryStore()
        self.fuel_type: str = "diesel"

    def compose(self) -> ComposeResult:
        """Build the widget tree for the TUI."""
        yield Header()
        yield Container(
            Static("⛽ Fuel Price Tracker", id="title"),
            Horizontal(
                Button("Check now", variant="primary", id="check_btn"),
                Select(
                    [(FUEL_LABELS[f], f) for f in FUEL_TYPES],
                    value=self.fuel_type,
                    allow_blank=False,
                    id="fuel_select",
                ),
                id="toolbar",
            ),
            Static("Ready", id="status"),
            cast(
                DataTable[str | Text],
                DataTable(
                    id="stations_table",
                    zebra_stripes=True,
                    cursor_type="row",
                ),
            ),
            Static("", id="analytics"),
            id="main_container",
        )
        yield Footer()

    def on_mount(self) -> None:
        """Configure the table columns and load stored data."""
        table = self._table()
        table.add_columns(
            "Station", "State",
            *(FUEL_LABELS[f] for f in FUEL_TYPES),
            "Updated",
        )
        self.action_refresh()

    def _table(self) -> DataTable[str | Text]:
        return cast(
            DataTable[str | Text],
            self.query_one("#stations_table", DataTable),
        )

    def _selected_station(self) -> Station | None:
        row = self._table().cursor_row
        if 0 <= row < len(self.stations):
            return self.stations[row]
        return None

    # ── Data ─────────────────────────────────────────────

    def populate_table(self) -> None:
        """Fill the DataTable with the latest reading per station."""
        table = self._table()
        table.clear()
        latest: list[PriceReading | None] = [
            self.history.latest(s.station_id) for s in self.stations
        ]
        cheapest = {
            fuel: min(
                (p for r in latest if r and (p := r.prices.get(fuel))),
                default=None,
            )
            for fuel in FUEL_TYPES
        }

        for station, reading in zip(self.stations, latest):
            state = (
                Text("open", style="green")
                if is_station_open(station)
                else Text("closed", style="dim")
            )
            cells: list[str | Text] = []
            for fuel in FUEL_TYPES:
                price = reading.prices.get(fuel) if reading else None
                if price is None:
                    cells.append("—")
                    continue
                style = "bold green" if price == cheapest[fuel] else ""
                cells.append(Text(f"{price:.3f} €", style=style))
            updated = (
                reading.timestamp.astimezone(Settings.TIMEZONE)
                .strftime("%d.%m. %H:%M")
                if reading else "—"
            )
            table.add_row(station.display_name[:40], state, *cells, updated)

    def show_analytics(self) -> None:
        """Render the weekly pattern of the highlighted station."""
        panel = self.query_one("#analytics", Static)
        station = self._selected_station()
        if station is None:
            panel.update("")
            return
        result = analyze_weekly_patterns(
            self.history, station.station_id, self.fuel_type,
        )
        if isinstance(result, InsufficientData):
            panel.update(f"📊 {station.display_name}: {result.message}")
            return
        slots = ", ".join(
            f"{s.day} {s.hour}:00 ({s.avg_price:.3f} €)"
            for s in result.top_slots
        ) or "—"
        panel.update(
            f"📊 {station.display_name} · {self.fuel_type.upper()} · "
            f"{result.total_observations} readings\n"
            f"Best day: {result.best_day.day} "
            f"({result.best_day.avg_price:.3f} €)   "
            f"Best hour: {result.best_hour.hour}:00 "
            f"({result.best_hour.avg_price:.3f} €)\n"
            f"Top slots: {slots}"
        )

    # ── Events ───────────────────────────────────────────

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        """Handle button click events."""
        if event.button.id == "check_btn":
            await self.action_check()

    def on_select_changed(self, event: Select.Changed) -> None:
        """Switch the analytics fuel type."""
        if event.select.id == "fuel_select" and event.value in FUEL_TYPES:
            self.fuel_type = str(event.value)
            self.show_analytics()

    def on_data_table_row_highlighted(
        self, event: DataTable.RowHighlighted
    ) -> None:
        self.show_analytics()

    def on_data_table_row_selected(
        self, event: DataTable.RowSelected
    ) -> None:
        """Open the selected station page in the default browser."""
        if 0 <= event.cursor_row < len(self.stations):
            webbrowser.open(self.stations[event.cursor_row].url)

    # ── Actions ──────────────────────────────────────────

    def action_refresh(self) -> None:
        """Reload stations and history from disk."""
        store = self.context.store
        try:
            self.stations = store.load_stations()
            self.history = store.load_history()
        except Exception as e:
            logger.error("Failed to load data", exc_info=True)
            self.notify(f"Load failed: {e}", severity="error")
            return
        self.populate_table()
        self.show_analytics()
        status = self.query_one("#status", Static)
        status.update(
            f"{len(self.stations)} stations, "
            f"{self.history.total_readings()} readings"
        )

    async def action_check(self) -> None:
        """Run a poll cycle now and reload the table."""
        status = self.query_one("#status", Static)
        status.update("🔍 Checking prices...")
        try:
            report = await self.poll_cycle.run_once()
        except Exception as e:
            logger.error("Manual poll cycle failed", exc_info=True)
            self.notify(f"Check failed: {e}", severity="error")
            status.update("❌ Check failed")
            return
        if report is None:
            self.notify("A check is already running", severity="warning")
            return
        self.action_refresh()
        checked = datetime.now(timezone.utc).astimezone(Settings.TIMEZONE)
        status.update(
            f"✅ {len(report.updates)} updated, "
            f"{len(report.changed)} changed, {len(report.closed)} closed, "
            f"{len(report.failed)} failed at {checked:%H:%M}"
        )

    def action_open_url(self) -> None:
        station = self._selected_station()
        if station is not None:
            webbrowser.open(station.url)

    def action_copy_url(self) -> None:
        """Copy the selected station's URL to the clipboard."""
        station = self._selected_station()
        if station is None:
            return
        try:
            import pyperclip  # type: ignore[import-untyped]

            pyperclip.copy(station.url)
            self.notify("URL Copied")
        except Exception:
            logger.error(
                "Failed to copy URL to clipboard",
                exc_info=True,
            )
            self.notify(
                "Install pyperclip", severity="warning"
            )

    def action_export(self) -> None:
        """Export the retained history to a CSV file."""
        try:
            path = self.context.store.export_history_csv(self.history)
            logger.info("Exported history to %s", path)
            self.notify(f"Exported to {path}")
        except Exception as e:
            logger.error("Failed to export history", exc_info=True)
            self.notify(f"Export failed: {e}", severity="error")
