# src/models/price_reading.py

"""Timestamped fuel price snapshot for a single station."""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from src.config.settings import Settings

logger = logging.getLogger("fuel_tracker.models")

FUEL_TYPES: tuple[str, ...] = ("diesel", "e5", "e10")

FUEL_LABELS: dict[str, str] = {
    "diesel": "Diesel",
    "e5": "E5",
    "e10": "E10",
}


def is_valid_price(value: object) -> bool:
    """Return True for a finite number strictly inside the sanity bound."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if not math.isfinite(value):
        return False
    return Settings.PRICE_MIN < value < Settings.PRICE_MAX


def format_price(value: float) -> str:
    """Render a price without trailing zeros, e.g. ``1.779`` or ``1.76``."""
    return f"{value:.3f}".rstrip("0").rstrip(".")


@dataclass
class Prices:
    """Per-fuel prices; ``None`` means the value is absent."""

    diesel: float | None = None
    e5: float | None = None
    e10: float | None = None

    def get(self, fuel: str) -> float | None:
        """Return the price for *fuel* (one of ``FUEL_TYPES``)."""
        if fuel not in FUEL_TYPES:
            raise ValueError(f"Unknown fuel type: {fuel}")
        value: float | None = getattr(self, fuel)
        return value

    def set_price(self, fuel: str, value: float | None) -> None:
        """Set the price for *fuel*."""
        if fuel not in FUEL_TYPES:
            raise ValueError(f"Unknown fuel type: {fuel}")
        setattr(self, fuel, value)

    def resolved(self) -> dict[str, float]:
        """Return only the fuels that have a value."""
        return {
            fuel: value
            for fuel in FUEL_TYPES
            if (value := self.get(fuel)) is not None
        }

    def missing(self) -> set[str]:
        """Return the fuels that are still absent."""
        return {f for f in FUEL_TYPES if self.get(f) is None}

    def to_dict(self) -> dict[str, float | None]:
        """Serialise to a plain dict keyed by fuel type."""
        return {f: self.get(f) for f in FUEL_TYPES}

    @classmethod
    def from_dict(cls, data: object) -> "Prices":
        """Build from stored data, dropping anything outside the bound."""
        prices = cls()
        if not isinstance(data, dict):
            return prices
        for fuel in FUEL_TYPES:
            value = data.get(fuel)
            if is_valid_price(value):
                prices.set_price(fuel, round(float(value), 3))
        return prices


@dataclass(frozen=True)
class PriceReading:
    """One price observation for one station at one instant (UTC)."""

    station_id: str
    name: str
    url: str
    prices: Prices = field(default_factory=Prices)
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the JSON history record format."""
        return {
            "station_id": self.station_id,
            "name": self.name,
            "url": self.url,
            "prices": self.prices.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: object) -> "PriceReading | None":
        """Parse a stored record; malformed records yield ``None``."""
        if not isinstance(data, dict):
            return None
        try:
            timestamp = datetime.fromisoformat(
                str(data["timestamp"]).replace("Z", "+00:00")
            )
        except (KeyError, ValueError):
            logger.warning("Dropping reading with bad timestamp: %r", data)
            return None
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        url = str(data.get("url", ""))
        return cls(
            station_id=str(data.get("station_id") or url),
            name=str(data.get("name", "")),
            url=url,
            prices=Prices.from_dict(data.get("prices")),
            timestamp=timestamp.astimezone(timezone.utc),
        )
