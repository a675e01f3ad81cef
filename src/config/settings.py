# src/config/settings.py

"""Central configuration for the fuel_tracker service."""

import os
from pathlib import Path
from zoneinfo import ZoneInfo

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


def _env_list(name: str) -> list[str]:
    """Split a comma-separated environment variable into trimmed items."""
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    """Central configuration for the fuel_tracker service."""

    # --- Scraping ---
    REQUEST_TIMEOUT: int = 15           # Seconds before a fetch fails
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
    ]
    # The target site varies markup by locale, so Accept-Language is
    # part of the request contract.
    DEFAULT_HEADERS: dict[str, str] = {
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/131.0.0.0 Safari/537.36"
        ),
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/webp,*/*;q=0.8"
        ),
        "Accept-Language": "de-DE,de;q=0.9,en;q=0.8",
    }

    # --- Polling ---
    POLL_INTERVAL_SECONDS: int = 300

    # --- History & analytics ---
    RETENTION_DAYS: int = 14
    ANALYTICS_WINDOW_DAYS: int = 7
    ANALYTICS_MIN_OBSERVATIONS: int = 20
    ANALYTICS_MIN_SLOT_OBSERVATIONS: int = 3
    ANALYTICS_TOP_SLOTS: int = 5

    # --- Price sanity bound (exclusive on both ends) ---
    PRICE_MIN: float = 0.0
    PRICE_MAX: float = 3.0

    # --- Local time for opening hours and analytics ---
    TIMEZONE: ZoneInfo = ZoneInfo(
        os.getenv("FUEL_TRACKER_TZ", "Europe/Berlin")
    )

    # --- Telegram ---
    TELEGRAM_TOKEN: str = (
        os.getenv("TELEGRAM_TOKEN")
        or os.getenv("TELEGRAM_BOT_TOKEN")
        or ""
    )
    TELEGRAM_API_URL: str = "https://api.telegram.org/bot{token}/{method}"
    TELEGRAM_POLL_TIMEOUT: int = 25     # Long-poll seconds for getUpdates
    ADMIN_IDS: list[str] = _env_list("ADMIN_IDS")

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "src" / "config" / "selectors.json"
    DATA_DIR: Path = Path(
        os.getenv("FUEL_TRACKER_DATA_DIR", str(BASE_DIR / "data"))
    )
    STATIONS_PATH: Path = DATA_DIR / "stations.json"
    HISTORY_PATH: Path = DATA_DIR / "database.json"
    SUBSCRIBERS_PATH: Path = DATA_DIR / "users.json"
    OFFSET_PATH: Path = DATA_DIR / "telegram_offset.txt"
    EXPORTS_DIR: Path = BASE_DIR / "exports"
    LOGS_DIR: Path = BASE_DIR / "logs"
