# tests/test_schedule_gate.py

"""Tests for the opening-hours gate."""

import unittest
from datetime import datetime, timezone
from unittest.mock import patch
from zoneinfo import ZoneInfo

from src.config.settings import Settings
from src.filters.schedule_gate import is_station_open
from src.models.station import OpeningHours, Station

URL = "https://example.de/tankstelle_details/1"

# 2026-01-05 is a Monday; the 10th a Saturday, the 11th a Sunday.
MONDAY = (2026, 1, 5)
SATURDAY = (2026, 1, 10)
SUNDAY = (2026, 1, 11)


def _local(day: tuple[int, int, int], hour: int, minute: int = 0) -> datetime:
    return datetime(*day, hour, minute, tzinfo=Settings.TIMEZONE)


class TestScheduleGate(unittest.TestCase):
    """Open/closed decisions and fail-open behaviour."""

    def setUp(self) -> None:
        self.station = Station(
            url=URL,
            name="Aral",
            opening_hours=OpeningHours(
                mon_fri="6:00-22:00", sat="8:00-20:00", sun=None,
            ),
        )

    def test_no_schedule_is_open(self) -> None:
        self.assertTrue(is_station_open(Station(url=URL), _local(MONDAY, 3)))

    def test_24h_flag_is_open(self) -> None:
        station = Station(
            url=URL,
            opening_hours=OpeningHours(is_24h=True, mon_fri="6:00-22:00"),
        )
        self.assertTrue(is_station_open(station, _local(MONDAY, 3)))

    def test_inside_window(self) -> None:
        self.assertTrue(is_station_open(self.station, _local(MONDAY, 12)))

    def test_open_boundary_inclusive(self) -> None:
        self.assertTrue(is_station_open(self.station, _local(MONDAY, 6, 0)))

    def test_close_boundary_exclusive(self) -> None:
        with self.assertLogs("fuel_tracker.schedule", level="INFO"):
            self.assertFalse(
                is_station_open(self.station, _local(MONDAY, 22, 0)),
            )

    def test_before_opening(self) -> None:
        self.assertFalse(is_station_open(self.station, _local(MONDAY, 5, 59)))

    def test_saturday_group(self) -> None:
        self.assertFalse(is_station_open(self.station, _local(SATURDAY, 7)))
        self.assertTrue(is_station_open(self.station, _local(SATURDAY, 9)))

    def test_unset_slot_is_open(self) -> None:
        self.assertTrue(is_station_open(self.station, _local(SUNDAY, 3)))

    def test_unparseable_slot_is_open(self) -> None:
        station = Station(
            url=URL, opening_hours=OpeningHours(mon_fri="whenever"),
        )
        for hour in (0, 5, 12, 23):
            with self.subTest(hour=hour):
                self.assertTrue(is_station_open(station, _local(MONDAY, hour)))

    def test_instant_converted_to_local_time(self) -> None:
        """05:30 UTC in January is 06:30 in Berlin."""
        at = datetime(*MONDAY, 5, 30, tzinfo=timezone.utc)
        earlier = datetime(*MONDAY, 4, 30, tzinfo=timezone.utc)
        with patch.object(Settings, "TIMEZONE", ZoneInfo("Europe/Berlin")):
            self.assertTrue(is_station_open(self.station, at))
            self.assertFalse(is_station_open(self.station, earlier))


if __name__ == "__main__":
    unittest.main()
