# src/storage/json_store.py

"""JSON file persistence for stations, price history and subscribers."""

import csv
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

from src.config.settings import Settings
from src.models.price_reading import FUEL_TYPES
from src.models.station import Station
from src.models.subscriber import Subscriber
from src.storage.history_store import HistoryStore

logger = logging.getLogger("fuel_tracker.storage")


class JsonStore:
    """Reads and writes the three JSON documents the service runs on.

    * ``stations.json``: list of configured stations (read-only here)
    * ``database.json``: ``{station_id: [reading, ...]}`` newest first
    * ``users.json``: ``{chat_id: subscriber}``

    Writes go to a temporary file in the same directory and are moved
    into place with ``os.replace``.  A missing or malformed file loads as
    an empty default.
    """

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir: Path = data_dir or Settings.DATA_DIR
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.stations_path = self.data_dir / Settings.STATIONS_PATH.name
        self.history_path = self.data_dir / Settings.HISTORY_PATH.name
        self.subscribers_path = (
            self.data_dir / Settings.SUBSCRIBERS_PATH.name
        )
        logger.debug("JsonStore initialised, data_dir=%s", self.data_dir)

    # ── Low-level helpers ────────────────────────────────

    def _read_json(self, path: Path, default: Any) -> Any:
        if not path.exists():
            return default
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning(
                "Failed to read %s: %s, using defaults", path.name, exc,
            )
            return default

    def _write_json(self, path: Path, data: Any) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    # ── Stations ─────────────────────────────────────────

    def load_stations(self) -> list[Station]:
        """Configured stations; malformed entries are skipped."""
        data = self._read_json(self.stations_path, [])
        if not isinstance(data, list):
            logger.warning(
                "%s is not a list; no stations loaded",
                self.stations_path.name,
            )
            return []
        stations = [
            station for raw in data
            if (station := Station.from_dict(raw)) is not None
        ]
        logger.debug("Loaded %d stations", len(stations))
        return stations

    # ── History ──────────────────────────────────────────

    def load_history(self) -> HistoryStore:
        return HistoryStore.from_dict(self._read_json(self.history_path, {}))

    def save_history(self, history: HistoryStore) -> None:
        self._write_json(self.history_path, history.to_dict())
        logger.debug(
            "Saved history: %d readings across %d stations",
            history.total_readings(),
            len(history.station_ids()),
        )

    def history_size_kb(self) -> float:
        """Size of the persisted history document in KB."""
        if not self.history_path.exists():
            return 0.0
        return self.history_path.stat().st_size / 1024

    # ── Subscribers ──────────────────────────────────────

    def load_subscribers(self) -> dict[str, Subscriber]:
        data = self._read_json(self.subscribers_path, {})
        if not isinstance(data, dict):
            logger.warning(
                "%s is not a mapping; no subscribers loaded",
                self.subscribers_path.name,
            )
            return {}
        return {
            str(chat_id): Subscriber.from_dict(str(chat_id), raw)
            for chat_id, raw in data.items()
        }

    def save_subscribers(self, subscribers: dict[str, Subscriber]) -> None:
        self._write_json(
            self.subscribers_path,
            {chat_id: sub.to_dict() for chat_id, sub in subscribers.items()},
        )

    def get_or_create_subscriber(self, chat_id: str) -> Subscriber:
        """Return the stored subscriber, creating one with defaults."""
        subscribers = self.load_subscribers()
        subscriber = subscribers.get(chat_id)
        if subscriber is None:
            subscriber = Subscriber(chat_id=chat_id)
            subscribers[chat_id] = subscriber
            self.save_subscribers(subscribers)
            logger.info("New subscriber %s", chat_id)
        return subscriber

    def update_subscriber(self, subscriber: Subscriber) -> None:
        """Persist one subscriber, leaving the others untouched."""
        subscribers = self.load_subscribers()
        subscribers[subscriber.chat_id] = subscriber
        self.save_subscribers(subscribers)

    # ── Export ───────────────────────────────────────────

    def export_history_csv(
        self,
        history: HistoryStore | None = None,
        export_dir: Path | None = None,
    ) -> Path:
        """Write every retained reading to a timestamped CSV file."""
        if history is None:
            history = self.load_history()
        directory = export_dir or Settings.EXPORTS_DIR
        directory.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filepath = directory / f"history_{timestamp}.csv"

        count = 0
        with open(filepath, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(["Timestamp", "Station", "URL", *FUEL_TYPES])
            for station_id in history.station_ids():
                for reading in reversed(history.readings(station_id)):
                    writer.writerow([
                        reading.timestamp.isoformat(),
                        reading.name,
                        reading.url,
                        *(
                            "" if (p := reading.prices.get(fuel)) is None
                            else p
                            for fuel in FUEL_TYPES
                        ),
                    ])
                    count += 1

        logger.info("Exported %d readings to %s", count, filepath)
        return filepath
