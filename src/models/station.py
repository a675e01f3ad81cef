# src/models/station.py

"""Station and opening-hours models loaded from ``stations.json``."""

import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse, urlunparse

logger = logging.getLogger("fuel_tracker.models")

# "6:00-22:00" or "06:00 - 22:00"
_INTERVAL_RE = re.compile(
    r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$"
)

_TRAILING_ID_RE = re.compile(r"/(\d+)/?$")


def normalize_station_url(raw_url: str) -> str:
    """Strip query string, fragment and trailing slash to get a stable key."""
    parsed = urlparse(raw_url.strip())
    path = parsed.path.rstrip("/") or parsed.path
    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        path,
        "",
        "",  # drop session/tracking query
        "",  # drop fragment
    ))


def station_numeric_id(url: str) -> str | None:
    """Return the numeric id from the trailing path segment, if any."""
    match = _TRAILING_ID_RE.search(urlparse(url).path)
    return match.group(1) if match else None


def parse_interval(text: str) -> tuple[int, int] | None:
    """Parse ``"H:MM-H:MM"`` into (open, close) minutes since midnight.

    Returns ``None`` when the text does not match or a field is out of
    range (hours 0-23, minutes 0-59).
    """
    match = _INTERVAL_RE.match(text)
    if not match:
        return None
    oh, om, ch, cm = (int(g) for g in match.groups())
    if oh > 23 or ch > 23 or om > 59 or cm > 59:
        return None
    return oh * 60 + om, ch * 60 + cm


def _validated_slot(value: object, slot: str, station: str) -> str | None:
    """Keep a schedule slot only if it parses to a same-day interval."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        logger.warning(
            "Station %s: ignoring non-string %s schedule %r",
            station, slot, value,
        )
        return None
    interval = parse_interval(value)
    if interval is None:
        logger.warning(
            "Station %s: unparseable %s schedule %r, treating as open",
            station, slot, value,
        )
        return None
    open_minutes, close_minutes = interval
    if close_minutes <= open_minutes:
        # Overnight windows are not supported; reject instead of guessing.
        logger.warning(
            "Station %s: %s schedule %r closes before it opens, "
            "treating as open",
            station, slot, value,
        )
        return None
    return value


@dataclass
class OpeningHours:
    """Per day-group opening hours; an unset slot means open all day."""

    is_24h: bool = False
    mon_fri: str | None = None
    sat: str | None = None
    sun: str | None = None

    def slot_for_weekday(self, weekday: int) -> str | None:
        """Return the schedule for ``datetime.weekday()`` (Mon=0)."""
        if weekday == 6:
            return self.sun
        if weekday == 5:
            return self.sat
        return self.mon_fri

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the ``stations.json`` format."""
        return {
            "is24h": self.is_24h,
            "monFri": self.mon_fri,
            "sat": self.sat,
            "sun": self.sun,
        }

    @classmethod
    def from_dict(
        cls, data: object, station: str = "?",
    ) -> "OpeningHours | None":
        """Parse and validate opening hours; invalid slots become unset."""
        if not isinstance(data, dict):
            return None
        return cls(
            is_24h=bool(data.get("is24h", False)),
            mon_fri=_validated_slot(data.get("monFri"), "monFri", station),
            sat=_validated_slot(data.get("sat"), "sat", station),
            sun=_validated_slot(data.get("sun"), "sun", station),
        )


@dataclass
class Station:
    """A tracked petrol station page."""

    url: str
    name: str = ""
    opening_hours: OpeningHours | None = None

    @property
    def station_id(self) -> str:
        """Stable identity used to key history, targets and alerts."""
        return normalize_station_url(self.url)

    @property
    def numeric_id(self) -> str | None:
        """The site's numeric station id taken from the URL."""
        return station_numeric_id(self.url)

    @property
    def display_name(self) -> str:
        """Configured name, or a fallback built from the numeric id."""
        return self.name or f"Station {self.numeric_id or self.url}"

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the ``stations.json`` format."""
        data: dict[str, Any] = {"name": self.name, "url": self.url}
        if self.opening_hours is not None:
            data["openingHours"] = self.opening_hours.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: object) -> "Station | None":
        """Parse a configured station; entries without a URL yield ``None``."""
        if not isinstance(data, dict):
            return None
        url = data.get("url")
        if not isinstance(url, str) or not url.strip():
            logger.warning("Dropping station without URL: %r", data)
            return None
        name = str(data.get("name", "") or "")
        return cls(
            url=url.strip(),
            name=name,
            opening_hours=OpeningHours.from_dict(
                data.get("openingHours"), station=name or url,
            ),
        )
