# src/models/subscriber.py

"""Per-chat subscriber preferences and alert state."""

from dataclasses import dataclass, field
from typing import Any

from src.models.price_reading import FUEL_TYPES, Prices


@dataclass
class Subscriber:
    """One chat's notification settings, targets and alert memory.

    ``last_alerts`` maps a station id to the price per fuel at which a
    target alert was last sent; ``None`` means the alert is armed.
    """

    chat_id: str
    notifications: bool = True
    notify_changes: bool = False
    targets: Prices = field(default_factory=Prices)
    selected_fuel_type: str = "diesel"
    last_alerts: dict[str, Prices] = field(
        default_factory=lambda: dict[str, Prices]()
    )

    def last_alert_for(self, station_id: str) -> Prices:
        """Return (creating on demand) the alert memory for a station."""
        if station_id not in self.last_alerts:
            self.last_alerts[station_id] = Prices()
        return self.last_alerts[station_id]

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the ``users.json`` record format."""
        return {
            "notifications": self.notifications,
            "notifyChanges": self.notify_changes,
            "targets": self.targets.to_dict(),
            "fuelType": self.selected_fuel_type,
            "lastAlerts": {
                station_id: prices.to_dict()
                for station_id, prices in self.last_alerts.items()
            },
        }

    @classmethod
    def from_dict(cls, chat_id: str, data: object) -> "Subscriber":
        """Parse a stored record; anything malformed falls back to defaults."""
        if not isinstance(data, dict):
            return cls(chat_id=chat_id)
        fuel = data.get("fuelType")
        raw_alerts = data.get("lastAlerts")
        last_alerts: dict[str, Prices] = {}
        if isinstance(raw_alerts, dict):
            last_alerts = {
                str(station_id): Prices.from_dict(prices)
                for station_id, prices in raw_alerts.items()
            }
        return cls(
            chat_id=chat_id,
            notifications=bool(data.get("notifications", True)),
            notify_changes=bool(data.get("notifyChanges", False)),
            targets=Prices.from_dict(data.get("targets")),
            selected_fuel_type=fuel if fuel in FUEL_TYPES else "diesel",
            last_alerts=last_alerts,
        )
