# src/filters/schedule_gate.py

"""Opening-hours gate: skip stations that are closed right now."""

import logging
from datetime import datetime

from src.config.settings import Settings
from src.models.station import Station, parse_interval

logger = logging.getLogger("fuel_tracker.schedule")


def is_station_open(
    station: Station, at: datetime | None = None,
) -> bool:
    """Decide whether *station* should be polled at instant *at*.

    Missing data never stops tracking: no schedule, a 24h flag, an
    unset slot for the day group or an unparseable slot all count as
    open.  Otherwise open iff ``open <= now < close`` in local time.
    """
    hours = station.opening_hours
    if hours is None or hours.is_24h:
        return True

    local = (at or datetime.now(Settings.TIMEZONE)).astimezone(
        Settings.TIMEZONE
    )
    schedule = hours.slot_for_weekday(local.weekday())
    if not schedule:
        return True

    interval = parse_interval(schedule)
    if interval is None:
        return True

    open_minutes, close_minutes = interval
    current = local.hour * 60 + local.minute
    is_open = open_minutes <= current < close_minutes
    if not is_open:
        logger.info(
            "Station %s closed at %s (%s)",
            station.display_name,
            local.strftime("%a %H:%M"),
            schedule,
        )
    return is_open
