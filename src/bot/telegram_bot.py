# src/bot/telegram_bot.py

"""Long-polling Telegram bot loop."""

import asyncio
import logging
from pathlib import Path
from typing import Any

from src.bot.commands import CommandHandler
from src.config.settings import Settings
from src.services.notifier import TelegramNotifier

logger = logging.getLogger("fuel_tracker.bot")


class TelegramBot:
    """Poll ``getUpdates`` and answer text commands.

    The next update id is stored in a small offset file so messages are
    not answered twice after a restart.
    """

    def __init__(
        self,
        handler: CommandHandler,
        notifier: TelegramNotifier,
        offset_path: Path | None = None,
    ) -> None:
        self.handler = handler
        self.notifier = notifier
        self.offset_path = offset_path or Settings.OFFSET_PATH

    def _load_offset(self) -> int | None:
        if not self.offset_path.exists():
            return None
        try:
            return int(self.offset_path.read_text(encoding="utf-8").strip())
        except (ValueError, OSError):
            logger.warning("Ignoring unreadable offset file %s", self.offset_path)
            return None

    def _save_offset(self, offset: int) -> None:
        self.offset_path.parent.mkdir(parents=True, exist_ok=True)
        self.offset_path.write_text(str(offset), encoding="utf-8")

    def fetch_updates(self, timeout: int = 0) -> list[dict[str, Any]] | None:
        """One ``getUpdates`` call; ``None`` when the API call failed."""
        payload: dict[str, Any] = {
            "timeout": timeout,
            "allowed_updates": ["message"],
        }
        offset = self._load_offset()
        if offset is not None:
            payload["offset"] = offset
        result = self.notifier.call(
            "getUpdates", payload, timeout=timeout + 10,
        )
        if not isinstance(result, list):
            return None
        return result

    async def process_updates(self, updates: list[dict[str, Any]]) -> int:
        """Answer every text message; return the number of replies sent."""
        replies = 0
        last_update_id: int | None = None
        for update in updates:
            last_update_id = update.get("update_id", last_update_id)
            message = update.get("message") or update.get("edited_message")
            if not message:
                continue
            text = message.get("text") or ""
            chat_id = str(message.get("chat", {}).get("id", ""))
            if not chat_id or not text:
                continue
            reply = await self.handler.handle(chat_id, text)
            if reply is None:
                continue
            sent = await asyncio.to_thread(self.notifier.notify, chat_id, reply)
            replies += int(sent)

        if last_update_id is not None:
            self._save_offset(last_update_id + 1)
        return replies

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Poll until *stop* is set."""
        if not self.notifier.enabled:
            logger.warning("Telegram bot not started: no token configured")
            return
        stop = stop or asyncio.Event()
        logger.info("Telegram bot polling started")
        while not stop.is_set():
            try:
                updates = await asyncio.to_thread(
                    self.fetch_updates, Settings.TELEGRAM_POLL_TIMEOUT,
                )
                if updates is None:
                    await asyncio.sleep(5)
                    continue
                await self.process_updates(updates)
            except Exception as exc:
                logger.error("Bot loop error: %s", exc, exc_info=True)
                await asyncio.sleep(5)
        logger.info("Telegram bot polling stopped")
