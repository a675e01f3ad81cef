# src/storage/history_store.py

"""Per-station rolling price history, newest reading first."""

import logging
from datetime import datetime, timedelta
from typing import Any

from src.models.price_reading import PriceReading

logger = logging.getLogger("fuel_tracker.history")


class HistoryStore:
    """In-memory ``station_id -> [reading, ...]`` map.

    Every sequence is kept newest-first: ``append`` only ever inserts at
    the head and rejects a reading older than the current head.
    Persistence is the job of :class:`~src.storage.json_store.JsonStore`,
    which round-trips this store through ``to_dict`` / ``from_dict``.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[PriceReading]] = {}

    # ── Mutation ─────────────────────────────────────────

    def append(self, station_id: str, reading: PriceReading) -> None:
        """Insert *reading* at the head of the station's sequence."""
        entries = self._entries.setdefault(station_id, [])
        if entries and reading.timestamp < entries[0].timestamp:
            raise ValueError(
                f"Reading at {reading.timestamp.isoformat()} is older "
                f"than the latest for {station_id} "
                f"({entries[0].timestamp.isoformat()})"
            )
        entries.insert(0, reading)

    def prune(
        self, station_id: str, retain: timedelta, as_of: datetime,
    ) -> int:
        """Drop readings with ``timestamp <= as_of - retain``.

        Returns the number of readings removed.
        """
        entries = self._entries.get(station_id)
        if not entries:
            return 0
        cutoff = as_of - retain
        kept = [r for r in entries if r.timestamp > cutoff]
        removed = len(entries) - len(kept)
        self._entries[station_id] = kept
        if removed:
            logger.debug(
                "Pruned %d readings for %s (cutoff %s)",
                removed, station_id, cutoff.isoformat(),
            )
        return removed

    # ── Queries ──────────────────────────────────────────

    def latest(self, station_id: str) -> PriceReading | None:
        """Newest reading for a station, or ``None``."""
        entries = self._entries.get(station_id)
        return entries[0] if entries else None

    def windowed(
        self, station_id: str, window: timedelta, as_of: datetime,
    ) -> list[PriceReading]:
        """Readings newer than ``as_of - window`` (a copy, newest first)."""
        cutoff = as_of - window
        return [
            r for r in self._entries.get(station_id, [])
            if r.timestamp > cutoff
        ]

    def readings(self, station_id: str) -> list[PriceReading]:
        """All retained readings for a station (a copy, newest first)."""
        return list(self._entries.get(station_id, []))

    def station_ids(self) -> list[str]:
        return list(self._entries)

    def total_readings(self) -> int:
        return sum(len(entries) for entries in self._entries.values())

    # ── Serialisation ────────────────────────────────────

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        """Serialise to the ``database.json`` layout."""
        return {
            station_id: [r.to_dict() for r in entries]
            for station_id, entries in self._entries.items()
        }

    @classmethod
    def from_dict(cls, data: object) -> "HistoryStore":
        """Load stored history, dropping malformed records.

        Sequences are re-sorted newest-first so a hand-edited file cannot
        break the ordering invariant.
        """
        store = cls()
        if not isinstance(data, dict):
            if data is not None:
                logger.warning(
                    "History data is not a mapping (%s); starting empty",
                    type(data).__name__,
                )
            return store
        for station_id, raw_entries in data.items():
            if not isinstance(raw_entries, list):
                logger.warning(
                    "Dropping history for %s: not a list", station_id,
                )
                continue
            readings = [
                reading for raw in raw_entries
                if (reading := PriceReading.from_dict(raw)) is not None
            ]
            readings.sort(key=lambda r: r.timestamp, reverse=True)
            store._entries[str(station_id)] = readings
        return store
