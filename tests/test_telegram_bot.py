# tests/test_telegram_bot.py

"""Tests for the long-polling bot loop."""

import asyncio
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from src.bot.telegram_bot import TelegramBot


def _update(update_id: int, text: str, chat_id: int = 42) -> dict[str, object]:
    return {
        "update_id": update_id,
        "message": {"chat": {"id": chat_id}, "text": text},
    }


class TestTelegramBot(unittest.IsolatedAsyncioTestCase):
    """Offset handling and reply delivery."""

    def setUp(self) -> None:
        self.tmp_dir = Path(tempfile.mkdtemp())
        self.offset_path = self.tmp_dir / "offset.txt"
        self.handler = MagicMock()
        self.handler.handle = AsyncMock(return_value="pong")
        self.notifier = MagicMock()
        self.notifier.enabled = True
        self.notifier.notify.return_value = True
        self.bot = TelegramBot(self.handler, self.notifier, self.offset_path)

    def tearDown(self) -> None:
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    async def test_process_updates_replies_and_saves_offset(self) -> None:
        sent = await self.bot.process_updates([
            _update(10, "/help"),
            _update(11, "/check", chat_id=7),
        ])
        self.assertEqual(sent, 2)
        self.handler.handle.assert_any_await("7", "/check")
        self.notifier.notify.assert_any_call("42", "pong")
        self.assertEqual(self.offset_path.read_text(encoding="utf-8"), "12")

    async def test_non_command_gets_no_reply(self) -> None:
        self.handler.handle.return_value = None
        sent = await self.bot.process_updates([_update(5, "hi")])
        self.assertEqual(sent, 0)
        self.notifier.notify.assert_not_called()
        # Offset still advances past the ignored message
        self.assertEqual(self.offset_path.read_text(encoding="utf-8"), "6")

    async def test_updates_without_text_skipped(self) -> None:
        sent = await self.bot.process_updates([
            {"update_id": 3, "message": {"chat": {"id": 1}, "sticker": {}}},
            {"update_id": 4, "callback_query": {}},
        ])
        self.assertEqual(sent, 0)
        self.handler.handle.assert_not_awaited()
        self.assertEqual(self.offset_path.read_text(encoding="utf-8"), "5")

    def test_fetch_updates_sends_stored_offset(self) -> None:
        self.offset_path.write_text("99", encoding="utf-8")
        self.notifier.call.return_value = [_update(99, "/help")]
        updates = self.bot.fetch_updates(timeout=25)
        self.assertEqual(len(updates or []), 1)
        method, payload = self.notifier.call.call_args.args
        self.assertEqual(method, "getUpdates")
        self.assertEqual(payload["offset"], 99)
        self.assertEqual(payload["allowed_updates"], ["message"])
        self.assertEqual(self.notifier.call.call_args.kwargs["timeout"], 35)

    def test_fetch_updates_failure(self) -> None:
        self.notifier.call.return_value = None
        self.assertIsNone(self.bot.fetch_updates())
        payload = self.notifier.call.call_args.args[1]
        self.assertNotIn("offset", payload)

    def test_corrupt_offset_ignored(self) -> None:
        self.offset_path.write_text("abc", encoding="utf-8")
        with self.assertLogs("fuel_tracker.bot", level="WARNING"):
            self.assertIsNone(self.bot._load_offset())

    async def test_run_without_token_returns(self) -> None:
        self.notifier.enabled = False
        with self.assertLogs("fuel_tracker.bot", level="WARNING"):
            await self.bot.run()
        self.notifier.call.assert_not_called()

    async def test_run_stops_on_event(self) -> None:
        stop = asyncio.Event()

        def fake_call(method: str, payload: dict[str, object],
                      timeout: int | None = None) -> list[dict[str, object]]:
            stop.set()
            return [_update(1, "/help")]

        self.notifier.call.side_effect = fake_call
        await asyncio.wait_for(self.bot.run(stop), timeout=5)
        self.handler.handle.assert_awaited_once_with("42", "/help")


if __name__ == "__main__":
    unittest.main()
