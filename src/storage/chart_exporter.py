# src/storage/chart_exporter.py

"""Generate interactive Plotly HTML charts from station price history."""

import importlib
import logging
import webbrowser
from datetime import datetime
from pathlib import Path
from types import ModuleType
from typing import Any

from src.config.settings import Settings
from src.models.price_reading import FUEL_LABELS, FUEL_TYPES, PriceReading
from src.models.station import normalize_station_url
from src.storage.history_store import HistoryStore

logger = logging.getLogger("fuel_tracker.chart")

_CHARTS_DIR: Path = Settings.EXPORTS_DIR / "charts"


def _get_plotly_go() -> ModuleType:
    """Import plotly.graph_objects lazily."""
    return importlib.import_module("plotly.graph_objects")


def _ensure_charts_dir() -> Path:
    _CHARTS_DIR.mkdir(parents=True, exist_ok=True)
    return _CHARTS_DIR


def build_station_chart(readings: list[PriceReading], title: str) -> Any:
    """One line per fuel over time; gaps where a price was absent."""
    go = _get_plotly_go()
    ordered = sorted(readings, key=lambda r: r.timestamp)
    dates = [r.timestamp.astimezone(Settings.TIMEZONE) for r in ordered]

    fig: Any = go.Figure()
    for fuel in FUEL_TYPES:
        prices = [r.prices.get(fuel) for r in ordered]
        if all(p is None for p in prices):
            continue
        fig.add_trace(go.Scatter(
            x=dates,
            y=prices,
            mode="lines+markers",
            name=FUEL_LABELS[fuel],
            connectgaps=False,
            hovertemplate=(
                "%{x|%Y-%m-%d %H:%M}<br>"
                f"{FUEL_LABELS[fuel]}: %{{y:.3f}} €"
                "<extra></extra>"
            ),
        ))

    fig.update_layout(
        title=f"Price History: {title[:60]}",
        xaxis_title="Time",
        yaxis_title="Price (€)",
        hovermode="x unified",
        template="plotly_white",
        legend={"orientation": "h", "y": -0.15},
    )
    return fig


def export_station_chart(
    station_url: str,
    history: HistoryStore,
    open_browser: bool = True,
) -> Path | None:
    """Export one station's retained history as an HTML chart."""
    station_id = normalize_station_url(station_url)
    readings = history.readings(station_id)
    if len(readings) < 2:
        logger.warning(
            "Not enough data points for chart: %s", station_id[:60],
        )
        return None

    title = readings[0].name or station_id
    fig = build_station_chart(readings, title)

    charts_dir = _ensure_charts_dir()
    slug = title[:30].replace(" ", "_").replace("/", "_")
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = charts_dir / f"{slug}_{stamp}.html"
    fig.write_html(str(filepath))
    logger.info("Chart saved to %s", filepath)

    if open_browser:
        webbrowser.open(filepath.as_uri())

    return filepath
