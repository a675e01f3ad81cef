# src/filters/change_detector.py

"""Price change detection between consecutive readings."""

from src.models.price_reading import (
    FUEL_LABELS,
    FUEL_TYPES,
    PriceReading,
    format_price,
)


def diff_readings(
    previous: PriceReading | None, current: PriceReading,
) -> list[str]:
    """Return ``"Diesel: 1.779€ → 1.759€"`` notes for changed fuels.

    Only fuels present in both readings with unequal values produce a
    note; a price appearing or disappearing is not a change.
    """
    if previous is None:
        return []
    notes: list[str] = []
    for fuel in FUEL_TYPES:
        old = previous.prices.get(fuel)
        new = current.prices.get(fuel)
        if old is None or new is None or old == new:
            continue
        notes.append(
            f"{FUEL_LABELS[fuel]}: {format_price(old)}€ → "
            f"{format_price(new)}€"
        )
    return notes
