# src/scrapers/station_fetcher.py

"""HTTP fetcher for station detail pages."""

import logging
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from src.config.settings import Settings


class StationFetcher:
    """Fetch raw station HTML with a browser-like, German-locale client.

    One attempt per call: a timeout, network error or non-200 status
    returns ``None`` and the next poll cycle is the retry.  A 200 that
    turns out to be a Cloudflare / CAPTCHA interstitial is re-requested
    once through cloudscraper, which can solve the JS challenge.
    """

    # Cloudflare challenge page markers (checked before keyword scan)
    _CF_CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "cf_chl_opt",
    ]

    def __init__(self) -> None:
        self.logger = logging.getLogger("fuel_tracker.fetcher")
        self.settings = Settings()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT

    def _headers(self, url: str) -> dict[str, str]:
        """Default headers plus a same-site Referer."""
        return {**self.settings.DEFAULT_HEADERS, "Referer": url}

    def _is_challenge(self, text: str) -> bool:
        """Check for Cloudflare challenge pages and CAPTCHA indicators."""
        lower = text.lower()
        for marker in self._CF_CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "Cloudflare challenge detected (marker: '%s')",
                    marker,
                )
                return True

        # Skip the keyword scan on content-rich pages to avoid
        # false positives from footer text.
        has_body_content = "<body" in lower and len(text) > 5000
        if not has_body_content:
            for keyword in self.settings.CAPTCHA_KEYWORDS:
                if keyword in lower:
                    self.logger.warning(
                        "CAPTCHA keyword '%s' detected", keyword,
                    )
                    return True
        return False

    def _fetch_cloudscraper(self, url: str) -> str | None:
        """Single cloudscraper request used after a challenge page."""
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            resp: Any = scraper.get(
                url,
                headers=self._headers(url),
                timeout=self._request_timeout,
            )
            if resp.status_code == 200:
                text = str(resp.text)
                if not self._is_challenge(text):
                    return text
            else:
                self.logger.warning(
                    "cloudscraper HTTP %d for %s", resp.status_code, url,
                )
        except Exception as exc:
            self.logger.error(
                "cloudscraper fallback failed for %s: %s",
                url, exc,
                exc_info=True,
            )
        return None

    def fetch(self, url: str) -> str | None:
        """Return the page HTML, or ``None`` on any transport failure."""
        try:
            resp = self.session.get(
                url,
                headers=self._headers(url),
                timeout=self._request_timeout,
            )
        except Exception as exc:
            self.logger.warning(
                "Request error for %s: %s", url, exc,
                exc_info=True,
            )
            return None

        if resp.status_code != 200:
            self.logger.warning(
                "HTTP %d for %s", resp.status_code, url,
            )
            return None

        text = resp.text
        if self._is_challenge(text):
            self.logger.info(
                "Challenge page for %s, falling back to cloudscraper",
                url,
            )
            return self._fetch_cloudscraper(url)
        return text
