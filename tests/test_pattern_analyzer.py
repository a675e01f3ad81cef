# tests/test_pattern_analyzer.py

"""Tests for weekly pattern analytics and history statistics."""

import unittest
from datetime import datetime, timedelta, timezone

from src.config.settings import Settings
from src.models.price_reading import PriceReading, Prices
from src.models.station import Station
from src.services.pattern_analyzer import (
    InsufficientData,
    WeeklyPattern,
    analyze_weekly_patterns,
    history_stats,
)
from src.storage.history_store import HistoryStore

STATION = "https://example.de/tankstelle_details/1"
NOW = datetime(2026, 1, 12, 12, 0, tzinfo=Settings.TIMEZONE)


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    """Local wall-clock time in January 2026, stored as UTC."""
    local = datetime(2026, 1, day, hour, minute, tzinfo=Settings.TIMEZONE)
    return local.astimezone(timezone.utc)


def _build_history(samples: list[tuple[datetime, Prices]]) -> HistoryStore:
    history = HistoryStore()
    for at, prices in sorted(samples, key=lambda s: s[0]):
        history.append(
            STATION,
            PriceReading(STATION, "Aral", STATION, prices, at),
        )
    return history


def _slot(day: int, hour: int, price: float, count: int = 3) -> list[tuple[datetime, Prices]]:
    return [
        (_at(day, hour, 10 * i), Prices(diesel=price)) for i in range(count)
    ]


class TestAnalyzeWeeklyPatterns(unittest.TestCase):
    """Bucketing, thresholds and ranking."""

    def setUp(self) -> None:
        samples = (
            _slot(6, 8, 1.60)        # Tuesday
            + _slot(6, 18, 1.80)
            + _slot(7, 8, 1.70)      # Wednesday
            + _slot(7, 18, 1.75)
            + _slot(8, 6, 1.65)      # Thursday
            + _slot(9, 10, 1.72)     # Friday
            + _slot(10, 20, 1.50, count=2)  # Saturday, below slot floor
        )
        # Outside the window, and a reading without diesel
        samples.append((_at(1, 9), Prices(diesel=1.00)))
        samples.append((_at(9, 11), Prices(e5=1.9)))
        self.history = _build_history(samples)

    def test_pattern(self) -> None:
        result = analyze_weekly_patterns(self.history, STATION, "diesel", now=NOW)
        self.assertIsInstance(result, WeeklyPattern)
        assert isinstance(result, WeeklyPattern)
        self.assertEqual(result.total_observations, 20)
        self.assertEqual(result.window_days, 7)

        self.assertEqual(result.best_day.day, "Saturday")
        self.assertEqual(result.best_day.avg_price, 1.5)
        self.assertEqual(result.best_hour.hour, 20)

        slots = [(s.day, s.hour, s.avg_price) for s in result.top_slots]
        self.assertEqual(slots, [
            ("Tuesday", 8, 1.6),
            ("Thursday", 6, 1.65),
            ("Wednesday", 8, 1.7),
            ("Friday", 10, 1.72),
            ("Wednesday", 18, 1.75),
        ])
        self.assertTrue(all(s.observations >= 3 for s in result.top_slots))

    def test_means_rounded_to_three_places(self) -> None:
        history = _build_history(
            [(_at(6, 8, i), Prices(diesel=1.702 if i % 3 else 1.701)) for i in range(20)]
        )
        result = analyze_weekly_patterns(history, STATION, "diesel", now=NOW)
        assert isinstance(result, WeeklyPattern)
        self.assertEqual(result.best_hour.avg_price, 1.702)

    def test_insufficient_data(self) -> None:
        history = _build_history(_slot(6, 8, 1.6, count=19))
        result = analyze_weekly_patterns(history, STATION, "diesel", now=NOW)
        self.assertIsInstance(result, InsufficientData)
        assert isinstance(result, InsufficientData)
        self.assertEqual(result.observations, 19)
        self.assertEqual(result.required, 20)
        self.assertIn("19/20", result.message)

    def test_only_qualifying_readings_count(self) -> None:
        """Plenty of history, but too little of it for the fuel."""
        result = analyze_weekly_patterns(self.history, STATION, "e5", now=NOW)
        assert isinstance(result, InsufficientData)
        self.assertEqual(result.observations, 1)

    def test_old_readings_ignored(self) -> None:
        later = NOW + timedelta(days=5)
        result = analyze_weekly_patterns(self.history, STATION, "diesel", now=later)
        self.assertIsInstance(result, InsufficientData)

    def test_unknown_station(self) -> None:
        result = analyze_weekly_patterns(self.history, "other", "diesel", now=NOW)
        self.assertIsInstance(result, InsufficientData)

    def test_unknown_fuel(self) -> None:
        with self.assertRaises(ValueError):
            analyze_weekly_patterns(self.history, STATION, "lpg", now=NOW)


class TestHistoryStats(unittest.TestCase):
    """Database statistics."""

    def test_stats(self) -> None:
        history = _build_history(
            [(_at(2, 8), Prices(diesel=1.7)), (_at(9, 8), Prices(diesel=1.6))]
        )
        stations = [
            Station(url=STATION, name="Aral"),
            Station(url="https://example.de/tankstelle_details/2", name="Shell"),
        ]
        stats = history_stats(history, stations, size_kb=1.2345)
        self.assertEqual(stats.total_readings, 2)
        self.assertEqual(stats.period_days, 7)
        self.assertEqual(stats.size_kb, 1.23)
        self.assertEqual(stats.last_check, _at(9, 8))
        self.assertEqual(
            [(s.name, s.readings) for s in stats.stations],
            [("Aral", 2), ("Shell", 0)],
        )

    def test_empty(self) -> None:
        stats = history_stats(HistoryStore(), [])
        self.assertEqual(stats.total_readings, 0)
        self.assertIsNone(stats.last_check)


if __name__ == "__main__":
    unittest.main()
