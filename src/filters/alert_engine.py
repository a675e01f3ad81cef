# src/filters/alert_engine.py

"""Per-subscriber target alerts with anti-spam hysteresis.

For every (subscriber, station, fuel) the remembered
``last_alerts[station][fuel]`` encodes the alert state:

* no target configured        → never alert, state untouched
* price above target          → state cleared (alert re-armed)
* at/below target, armed      → alert, remember the price
* at/below target, remembered → alert only on a strictly lower price
"""

import logging
from typing import NamedTuple

from src.models.price_reading import (
    FUEL_TYPES,
    PriceReading,
    format_price,
)
from src.models.subscriber import Subscriber

logger = logging.getLogger("fuel_tracker.alerts")


class TargetDecision(NamedTuple):
    """Outcome of one target evaluation."""

    fire: bool
    last_alerted: float | None


def evaluate_target(
    price: float | None,
    target: float | None,
    last_alerted: float | None,
) -> TargetDecision:
    """Pure state transition for one (subscriber, station, fuel)."""
    if target is None or price is None:
        return TargetDecision(False, last_alerted)
    if price > target:
        return TargetDecision(False, None)
    if last_alerted is None or price < last_alerted:
        return TargetDecision(True, price)
    return TargetDecision(False, last_alerted)


def build_alerts(
    subscriber: Subscriber,
    reading: PriceReading,
    changes: list[str],
) -> list[str]:
    """Return alert texts for one subscriber and one fresh reading.

    Updates ``subscriber.last_alerts`` in place.  A subscriber with
    notifications switched off gets nothing and keeps its state.
    """
    if not subscriber.notifications:
        return []

    alerts: list[str] = []
    memory = subscriber.last_alert_for(reading.station_id)
    for fuel in FUEL_TYPES:
        price = reading.prices.get(fuel)
        target = subscriber.targets.get(fuel)
        decision = evaluate_target(price, target, memory.get(fuel))
        memory.set_price(fuel, decision.last_alerted)
        if decision.fire and price is not None and target is not None:
            alerts.append(
                f"🎯 {fuel.upper()} reached your target!\n"
                f"💰 {format_price(price)}€ "
                f"(target: {format_price(target)}€)"
            )
            logger.info(
                "Target alert for %s: %s %s <= %s at %s",
                subscriber.chat_id, fuel, price, target, reading.name,
            )

    if subscriber.notify_changes and changes:
        alerts.append("📊 Price changes\n" + "\n".join(changes))

    return alerts
