# src/services/notifier.py

"""Telegram Bot API client used for alerts and command replies."""

import html
import logging
import re
from typing import Any

from curl_cffi import requests as curl_requests

from src.config.settings import Settings
from src.models.price_reading import PriceReading

logger = logging.getLogger("fuel_tracker.notifier")

# Telegram rejects longer message texts.
MAX_MESSAGE_LENGTH = 4096

_TAG = re.compile(r"<(/?)([a-zA-Z]+)[^>]*>")
# Unterminated tag or entity at the end of a cut
_PARTIAL_MARKUP = re.compile(r"<[^>]*$|&[^;\s]*$")


def format_alert_message(reading: PriceReading, alerts: list[str]) -> str:
    """Wrap a subscriber's alerts for one station in an HTML message."""
    body = "\n\n".join(html.escape(a, quote=False) for a in alerts)
    return (
        f"⛽ <b>{html.escape(reading.name, quote=False)}</b>\n\n{body}\n\n"
        f'<a href="{html.escape(reading.url)}">Station page</a>'
    )


def truncate_html(text: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Shorten an HTML message to *limit* characters, markup intact.

    Cuts at the last line break that fits, drops a dangling tag or
    entity left by a hard cut and closes any tag still open.
    """
    if len(text) <= limit:
        return text
    budget = limit - 1
    while True:
        cut = text[:budget]
        newline = cut.rfind("\n")
        if newline > 0:
            cut = cut[:newline]
        cut = _PARTIAL_MARKUP.sub("", cut)
        open_tags: list[str] = []
        for closing, name in _TAG.findall(cut):
            if not closing:
                open_tags.append(name.lower())
            elif open_tags and open_tags[-1] == name.lower():
                open_tags.pop()
        result = cut + "…" + "".join(f"</{t}>" for t in reversed(open_tags))
        if len(result) <= limit:
            return result
        budget = max(budget - (len(result) - limit), 0)


class TelegramNotifier:
    """Send messages through the Telegram Bot API.

    Every call is independent: a failure for one chat is logged and
    reported as ``False`` so the caller can carry on with the next
    recipient.  Without a token the notifier is disabled.
    """

    def __init__(
        self,
        token: str | None = None,
        session: Any = None,
    ) -> None:
        self.token = Settings.TELEGRAM_TOKEN if token is None else token
        self.session = session or curl_requests.Session()
        if not self.token:
            logger.warning(
                "TELEGRAM_TOKEN is not set, notifications are disabled",
            )

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    def call(
        self,
        method: str,
        payload: dict[str, Any],
        timeout: float | None = None,
    ) -> Any:
        """Invoke a Bot API method; return its ``result`` or ``None``."""
        if not self.enabled:
            return None
        url = Settings.TELEGRAM_API_URL.format(
            token=self.token, method=method,
        )
        try:
            resp = self.session.post(
                url,
                json=payload,
                timeout=timeout or Settings.REQUEST_TIMEOUT,
            )
            data = resp.json()
        except Exception as exc:
            logger.error(
                "Telegram %s failed: %s", method, exc, exc_info=True,
            )
            return None
        if resp.status_code != 200 or not data.get("ok"):
            logger.warning(
                "Telegram %s HTTP %d: %s",
                method, resp.status_code, data.get("description", ""),
            )
            return None
        return data.get("result")

    def notify(self, chat_id: str, text: str) -> bool:
        """Deliver *text* (HTML) to one chat.  Never raises."""
        if not self.enabled:
            logger.debug("Notifier disabled; dropping message to %s", chat_id)
            return False
        text = truncate_html(text)
        result = self.call(
            "sendMessage",
            {
                "chat_id": chat_id,
                "text": text,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
        )
        if result is None:
            logger.warning("Message to %s was not delivered", chat_id)
            return False
        return True
