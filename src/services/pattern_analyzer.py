# src/services/pattern_analyzer.py

"""Weekly price pattern mining and history statistics."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from src.config.settings import Settings
from src.models.price_reading import FUEL_TYPES
from src.models.station import Station
from src.storage.history_store import HistoryStore

logger = logging.getLogger("fuel_tracker.analytics")

WEEKDAY_NAMES: tuple[str, ...] = (
    "Monday", "Tuesday", "Wednesday", "Thursday",
    "Friday", "Saturday", "Sunday",
)


@dataclass(frozen=True)
class DayAverage:
    day: str
    avg_price: float


@dataclass(frozen=True)
class HourAverage:
    hour: int
    avg_price: float


@dataclass(frozen=True)
class TimeSlot:
    """A (weekday, hour) bucket with enough observations to rank."""

    day: str
    hour: int
    avg_price: float
    observations: int


@dataclass(frozen=True)
class WeeklyPattern:
    """Cheapest weekday, hour and (weekday, hour) slots for one fuel."""

    station_id: str
    fuel_type: str
    best_day: DayAverage
    best_hour: HourAverage
    top_slots: list[TimeSlot]
    total_observations: int
    window_days: int


@dataclass(frozen=True)
class InsufficientData:
    """Not enough history yet; a normal result, not an error."""

    station_id: str
    fuel_type: str
    observations: int
    required: int

    @property
    def message(self) -> str:
        return (
            f"Not enough data ({self.observations}/{self.required} "
            f"readings in the last {Settings.ANALYTICS_WINDOW_DAYS} days)"
        )


def _mean(values: list[float]) -> float:
    return round(sum(values) / len(values), 3)


def analyze_weekly_patterns(
    history: HistoryStore,
    station_id: str,
    fuel_type: str = "diesel",
    now: datetime | None = None,
) -> WeeklyPattern | InsufficientData:
    """Find the cheapest weekday, hour and time slots for a fuel.

    Only readings inside the trailing analytics window that carry a
    price for *fuel_type* count.  Buckets use local time
    (``Settings.TIMEZONE``); ties keep iteration order.
    """
    if fuel_type not in FUEL_TYPES:
        raise ValueError(f"Unknown fuel type: {fuel_type}")

    as_of = now or datetime.now(timezone.utc)
    window = timedelta(days=Settings.ANALYTICS_WINDOW_DAYS)
    samples: list[tuple[datetime, float]] = [
        (reading.timestamp.astimezone(Settings.TIMEZONE), price)
        for reading in history.windowed(station_id, window, as_of)
        if (price := reading.prices.get(fuel_type)) is not None
    ]

    required = Settings.ANALYTICS_MIN_OBSERVATIONS
    if len(samples) < required:
        logger.debug(
            "Insufficient data for %s/%s: %d < %d",
            station_id, fuel_type, len(samples), required,
        )
        return InsufficientData(station_id, fuel_type, len(samples), required)

    by_day: dict[str, list[float]] = defaultdict(list)
    by_hour: dict[int, list[float]] = defaultdict(list)
    by_slot: dict[tuple[str, int], list[float]] = defaultdict(list)
    for local, price in samples:
        day = WEEKDAY_NAMES[local.weekday()]
        by_day[day].append(price)
        by_hour[local.hour].append(price)
        by_slot[(day, local.hour)].append(price)

    day_avgs = [DayAverage(d, _mean(p)) for d, p in by_day.items()]
    hour_avgs = [HourAverage(h, _mean(p)) for h, p in by_hour.items()]
    slots = [
        TimeSlot(day, hour, _mean(prices), len(prices))
        for (day, hour), prices in by_slot.items()
        if len(prices) >= Settings.ANALYTICS_MIN_SLOT_OBSERVATIONS
    ]
    slots.sort(key=lambda s: s.avg_price)

    pattern = WeeklyPattern(
        station_id=station_id,
        fuel_type=fuel_type,
        best_day=min(day_avgs, key=lambda d: d.avg_price),
        best_hour=min(hour_avgs, key=lambda h: h.avg_price),
        top_slots=slots[:Settings.ANALYTICS_TOP_SLOTS],
        total_observations=len(samples),
        window_days=Settings.ANALYTICS_WINDOW_DAYS,
    )
    logger.info(
        "Analytics %s/%s: best day %s, best hour %d:00 (%d samples)",
        station_id, fuel_type, pattern.best_day.day,
        pattern.best_hour.hour, pattern.total_observations,
    )
    return pattern


# ── Database statistics ─────────────────────────────────


@dataclass(frozen=True)
class StationStats:
    name: str
    readings: int
    newest: datetime | None


@dataclass
class HistoryStats:
    """Summary of the retained history database."""

    stations: list[StationStats] = field(
        default_factory=lambda: list[StationStats]()
    )
    total_readings: int = 0
    period_days: int = 0
    size_kb: float = 0.0
    last_check: datetime | None = None


def history_stats(
    history: HistoryStore,
    stations: list[Station],
    size_kb: float = 0.0,
) -> HistoryStats:
    """Per-station reading counts plus overall coverage of the history."""
    stats = HistoryStats(size_kb=round(size_kb, 2))
    oldest: datetime | None = None
    for station in stations:
        readings = history.readings(station.station_id)
        newest = readings[0].timestamp if readings else None
        stats.stations.append(
            StationStats(station.display_name, len(readings), newest)
        )
        stats.total_readings += len(readings)
        if not readings:
            continue
        station_oldest = readings[-1].timestamp
        if oldest is None or station_oldest < oldest:
            oldest = station_oldest
        if stats.last_check is None or readings[0].timestamp > stats.last_check:
            stats.last_check = readings[0].timestamp
    if oldest is not None and stats.last_check is not None:
        stats.period_days = (stats.last_check - oldest).days
    return stats
