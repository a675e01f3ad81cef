# src/services/health_checker.py

"""Station page connectivity health checker."""

import asyncio
import logging
import time
from dataclasses import dataclass

from src.models.station import Station
from src.scrapers.station_fetcher import StationFetcher

logger = logging.getLogger("fuel_tracker.health")

_HEALTH_TIMEOUT = 10  # seconds per station
_SLOW_MS = 5000


@dataclass
class HealthResult:
    """Result of a single station health check."""

    station: str
    status: str  # "ok", "slow", "down"
    latency_ms: float
    message: str


def probe_station(station: Station) -> HealthResult:
    """Request one station page and classify the response."""
    fetcher = StationFetcher()
    start = time.monotonic()
    try:
        resp = fetcher.session.get(
            station.url,
            headers=fetcher._headers(station.url),
            timeout=_HEALTH_TIMEOUT,
        )
        elapsed_ms = (time.monotonic() - start) * 1000

        if resp.status_code != 200:
            return HealthResult(
                station=station.display_name,
                status="down",
                latency_ms=elapsed_ms,
                message=f"HTTP {resp.status_code}",
            )

        if fetcher._is_challenge(resp.text):
            return HealthResult(
                station=station.display_name,
                status="down",
                latency_ms=elapsed_ms,
                message="Challenge page",
            )

        if elapsed_ms > _SLOW_MS:
            return HealthResult(
                station=station.display_name,
                status="slow",
                latency_ms=elapsed_ms,
                message="High latency",
            )

        return HealthResult(
            station=station.display_name,
            status="ok",
            latency_ms=elapsed_ms,
            message="",
        )

    except Exception as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        return HealthResult(
            station=station.display_name,
            status="down",
            latency_ms=elapsed_ms,
            message=str(exc)[:80],
        )


class HealthChecker:
    """Runs concurrent health probes against all stations."""

    def __init__(self, stations: list[Station]) -> None:
        self.stations = stations

    async def check_all(self) -> list[HealthResult]:
        """Probe every configured station concurrently."""
        tasks = [
            asyncio.to_thread(probe_station, station)
            for station in self.stations
        ]
        results: list[HealthResult] = list(
            await asyncio.gather(*tasks)
        )
        for r in results:
            logger.info(
                "Health check %s: %s (%.0fms) %s",
                r.station,
                r.status,
                r.latency_ms,
                r.message,
            )
        return results
