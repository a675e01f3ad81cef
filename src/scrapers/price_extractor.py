# src/scrapers/price_extractor.py

"""Best-effort fuel price extraction from a station detail page.

The site renders each price as a main number (``1.77``) plus a
superscript third decimal (``9``), and the surrounding markup changes
without notice.  Extraction therefore runs an ordered table of
strategies; each one is only asked for the fuels that are still
missing after the previous ones:

1. ``direct_slots``    : fixed slot ids (1 = Diesel, 2 = E10, 3 = E5),
                         all-or-nothing.
2. ``price_fields``    : ``.price-field`` containers classified by the
                         keywords in the field and its parent.
3. ``scattered_nodes`` : loose ``current-price-N`` / ``suffix-price-N``
                         pairs joined by their numeric suffix.
4. ``free_text``       : regex over the visible page text.

A fuel that cannot be determined stays ``None``; it is never recorded
as zero.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NamedTuple

from bs4 import BeautifulSoup, Tag

from src.config.settings import Settings
from src.models.price_reading import (
    FUEL_TYPES,
    PriceReading,
    Prices,
    is_valid_price,
)
from src.models.station import normalize_station_url, station_numeric_id

logger = logging.getLogger("fuel_tracker.extractor")

# Priority order matters: a field is assigned to the first still
# unresolved fuel whose keywords appear in its text.
FUEL_KEYWORDS: dict[str, tuple[str, ...]] = {
    "diesel": ("diesel",),
    "e5": ("super e5", "e 5", "super 95"),
    "e10": ("super e10", "e 10"),
}

_FREE_TEXT_PATTERNS: dict[str, re.Pattern[str]] = {
    "diesel": re.compile(r"diesel\D*?(\d+[.,]\d{2,3})", re.IGNORECASE),
    "e5": re.compile(r"super\s+e5\D*?(\d+[.,]\d{2,3})", re.IGNORECASE),
    "e10": re.compile(r"super\s+e10\D*?(\d+[.,]\d{2,3})", re.IGNORECASE),
}

_BASE_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_ID_SUFFIX_RE = re.compile(r"(\d+)$")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ExtractionFailure:
    """No usable reading could be produced for a page."""

    url: str
    reason: str


def reconstruct_price(
    base: str | None, fragment: str | None = None,
) -> float | None:
    """Rebuild a three-decimal price from its split text fragments.

    ``("1,77", "9")`` → ``1.779``; ``("1.779", "9")`` → ``1.779``;
    ``("1.77", "")`` → ``1.77``.  Only the first digit of the fragment is
    used.  Returns ``None`` when the value does not parse or falls
    outside the sanity bound.
    """
    if not base:
        return None
    match = _BASE_NUMBER_RE.search(base.strip().replace(",", "."))
    if not match:
        return None
    number = match.group(0)

    digits = re.sub(r"\D", "", fragment or "")
    _, _, decimals = number.partition(".")
    if digits and len(decimals) == 2:
        number += digits[0]

    try:
        value = float(number)
    except ValueError:
        return None
    if not is_valid_price(value):
        return None
    return round(value, 3)


def classify_fuel(text: str, candidates: set[str]) -> str | None:
    """Return the first candidate fuel whose keywords occur in *text*."""
    lowered = text.lower()
    for fuel in FUEL_TYPES:
        if fuel not in candidates:
            continue
        if any(kw in lowered for kw in FUEL_KEYWORDS[fuel]):
            return fuel
    return None


def _text(node: Tag | None) -> str:
    """Whitespace-normalised text of a node, or empty string."""
    if node is None:
        return ""
    return _WHITESPACE_RE.sub(" ", node.get_text(" ")).strip()


# ── Strategies ──────────────────────────────────────────────


def extract_direct_slots(
    soup: BeautifulSoup,
    missing: set[str],
    selectors: dict[str, Any],
) -> dict[str, float]:
    """Read the three fixed price slots; accept only a complete set."""
    slots: dict[str, dict[str, str]] = selectors.get("direct_slots", {})
    found: dict[str, float] = {}
    for fuel in FUEL_TYPES:
        slot = slots.get(fuel)
        if not slot:
            return {}
        price = reconstruct_price(
            _text(soup.select_one(slot["price"])),
            _text(soup.select_one(slot["fragment"])),
        )
        if price is None:
            return {}
        found[fuel] = price
    return {f: p for f, p in found.items() if f in missing}


def extract_price_fields(
    soup: BeautifulSoup,
    missing: set[str],
    selectors: dict[str, Any],
) -> dict[str, float]:
    """Scan ``.price-field`` containers and classify each by keyword."""
    found: dict[str, float] = {}
    unresolved = set(missing)
    for field_el in soup.select(selectors["price_field"]):
        if not unresolved:
            break
        current = field_el.select_one(selectors["current_price"])
        if current is None:
            continue
        suffix = field_el.select_one(selectors["suffix_price"])
        price = reconstruct_price(_text(current), _text(suffix))
        if price is None:
            continue

        parent = field_el.parent if isinstance(field_el.parent, Tag) else None
        context = f"{_text(field_el)} {_text(parent)}"
        fuel = classify_fuel(context, unresolved)
        if fuel is None:
            continue
        found[fuel] = price
        unresolved.discard(fuel)
        logger.debug(
            "price_fields: %s=%s (current=%r, suffix=%r)",
            fuel, price, _text(current), _text(suffix),
        )
    return found


def extract_scattered_nodes(
    soup: BeautifulSoup,
    missing: set[str],
    selectors: dict[str, Any],
) -> dict[str, float]:
    """Pair loose price / suffix nodes by id suffix and classify by block."""
    pairs: dict[str, dict[str, Tag]] = {}
    for kind, selector in (
        ("current", selectors["current_price"]),
        ("suffix", selectors["suffix_price"]),
    ):
        for node in soup.select(selector):
            match = _ID_SUFFIX_RE.search(str(node.get("id", "")))
            if match:
                pairs.setdefault(match.group(1), {})[kind] = node

    found: dict[str, float] = {}
    unresolved = set(missing)
    block_tags: list[str] = selectors.get("block_ancestors", ["div"])
    for pair in pairs.values():
        if not unresolved:
            break
        current = pair.get("current")
        if current is None:
            continue
        price = reconstruct_price(_text(current), _text(pair.get("suffix")))
        if price is None:
            continue
        block = current.find_parent(block_tags)
        fuel = classify_fuel(_text(block), unresolved)
        if fuel is None:
            continue
        found[fuel] = price
        unresolved.discard(fuel)
        logger.debug("scattered_nodes: %s=%s", fuel, price)
    return found


def extract_free_text(
    soup: BeautifulSoup,
    missing: set[str],
    selectors: dict[str, Any],
) -> dict[str, float]:
    """Last resort: ``<label> … <price>`` patterns in the page text."""
    text = soup.get_text(" ")
    found: dict[str, float] = {}
    for fuel in FUEL_TYPES:
        if fuel not in missing:
            continue
        match = _FREE_TEXT_PATTERNS[fuel].search(text)
        if not match:
            continue
        try:
            value = float(match.group(1).replace(",", "."))
        except ValueError:
            continue
        if is_valid_price(value):
            found[fuel] = round(value, 3)
    return found


class ExtractionStrategy(NamedTuple):
    """One tier of the extraction chain."""

    name: str
    extract: Callable[
        [BeautifulSoup, set[str], dict[str, Any]], dict[str, float]
    ]


STRATEGIES: tuple[ExtractionStrategy, ...] = (
    ExtractionStrategy("direct_slots", extract_direct_slots),
    ExtractionStrategy("price_fields", extract_price_fields),
    ExtractionStrategy("scattered_nodes", extract_scattered_nodes),
    ExtractionStrategy("free_text", extract_free_text),
)


class PriceExtractor:
    """Turns a station page into a :class:`PriceReading`."""

    def __init__(
        self,
        selectors: dict[str, Any] | None = None,
        strategies: tuple[ExtractionStrategy, ...] = STRATEGIES,
    ) -> None:
        self.selectors = (
            selectors if selectors is not None
            else self._load_selectors(Settings.SELECTORS_PATH)
        )
        self.strategies = strategies

    @staticmethod
    def _load_selectors(path: Path) -> dict[str, Any]:
        """Load extraction CSS selectors from selectors.json."""
        with open(path, encoding="utf-8") as f:
            data: dict[str, Any] = json.load(f)
        return data

    def station_name(self, soup: BeautifulSoup, url: str) -> str:
        """First non-empty candidate heading, else ``Station <id>``."""
        for selector in self.selectors.get("station_name", []):
            name = _text(soup.select_one(selector))
            if name:
                return name
        return f"Station {station_numeric_id(url) or url}"

    def extract(
        self,
        html: str | None,
        source_url: str,
        now: datetime | None = None,
    ) -> PriceReading | ExtractionFailure:
        """Parse *html* into a reading; never raises on malformed markup."""
        if not html or not html.strip():
            return ExtractionFailure(source_url, "empty page")
        try:
            soup = BeautifulSoup(html, "lxml")
        except Exception as exc:
            logger.warning(
                "Unparseable HTML for %s: %s", source_url, exc,
                exc_info=True,
            )
            return ExtractionFailure(source_url, "unparseable page")

        prices = Prices()
        for strategy in self.strategies:
            missing = prices.missing()
            if not missing:
                break
            try:
                found = strategy.extract(soup, missing, self.selectors)
            except Exception as exc:
                logger.warning(
                    "Strategy %s failed for %s: %s",
                    strategy.name, source_url, exc,
                    exc_info=True,
                )
                continue
            for fuel, price in found.items():
                if fuel in missing:
                    prices.set_price(fuel, price)
            if found:
                logger.debug(
                    "%s resolved %s for %s",
                    strategy.name, sorted(found), source_url,
                )

        if not prices.resolved():
            logger.info("No prices found on %s", source_url)
            return ExtractionFailure(source_url, "no prices found")

        name = self.station_name(soup, source_url)
        logger.info(
            "Parsed %s: Diesel=%s, E5=%s, E10=%s",
            name, prices.diesel, prices.e5, prices.e10,
        )
        return PriceReading(
            station_id=normalize_station_url(source_url),
            name=name,
            url=source_url,
            prices=prices,
            timestamp=now or datetime.now(timezone.utc),
        )
