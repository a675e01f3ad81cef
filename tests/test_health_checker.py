# tests/test_health_checker.py

"""Tests for the station health checker service."""

import unittest
from unittest.mock import MagicMock, patch

from src.models.station import Station
from src.services.health_checker import (
    HealthChecker,
    HealthResult,
    probe_station,
)

STATION = Station(
    url="https://www.clever-tanken.de/tankstelle_details/12345",
    name="Aral",
)


def _fetcher(status: int = 200, text: str = "<html><body>ok</body></html>",
             challenge: bool = False) -> MagicMock:
    fetcher = MagicMock()
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    fetcher.session.get.return_value = resp
    fetcher._headers.return_value = {}
    fetcher._is_challenge.return_value = challenge
    return fetcher


@patch("src.services.health_checker.StationFetcher")
class TestProbeStation(unittest.TestCase):
    """Classification of a single station probe."""

    def test_ok_status(self, mock_cls: MagicMock) -> None:
        mock_cls.return_value = _fetcher()
        result = probe_station(STATION)
        self.assertEqual(result.status, "ok")
        self.assertEqual(result.station, "Aral")
        self.assertGreaterEqual(result.latency_ms, 0)

    def test_down_on_http_error(self, mock_cls: MagicMock) -> None:
        mock_cls.return_value = _fetcher(status=503)
        result = probe_station(STATION)
        self.assertEqual(result.status, "down")
        self.assertIn("503", result.message)

    def test_down_on_challenge_page(self, mock_cls: MagicMock) -> None:
        mock_cls.return_value = _fetcher(challenge=True)
        result = probe_station(STATION)
        self.assertEqual(result.status, "down")
        self.assertEqual(result.message, "Challenge page")

    def test_down_on_exception(self, mock_cls: MagicMock) -> None:
        fetcher = _fetcher()
        fetcher.session.get.side_effect = ConnectionError("Connection refused")
        mock_cls.return_value = fetcher
        result = probe_station(STATION)
        self.assertEqual(result.status, "down")
        self.assertIn("Connection refused", result.message)

    @patch("src.services.health_checker.time.monotonic", side_effect=[0.0, 6.0])
    def test_slow(self, _mono: MagicMock, mock_cls: MagicMock) -> None:
        mock_cls.return_value = _fetcher()
        result = probe_station(STATION)
        self.assertEqual(result.status, "slow")
        self.assertEqual(result.latency_ms, 6000.0)


class TestHealthChecker(unittest.IsolatedAsyncioTestCase):
    """Tests for the HealthChecker orchestrator."""

    @patch("src.services.health_checker.probe_station")
    async def test_check_all_returns_all_stations(
        self, mock_probe: MagicMock,
    ) -> None:
        mock_probe.side_effect = lambda s: HealthResult(
            station=s.display_name, status="ok", latency_ms=10.0, message="",
        )
        other = Station(url="https://example.de/tankstelle_details/2", name="Shell")
        results = await HealthChecker([STATION, other]).check_all()
        self.assertEqual(sorted(r.station for r in results), ["Aral", "Shell"])

    async def test_no_stations(self) -> None:
        self.assertEqual(await HealthChecker([]).check_all(), [])


if __name__ == "__main__":
    unittest.main()
