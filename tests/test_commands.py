# tests/test_commands.py

"""Tests for the chat command handlers."""

import asyncio
import json
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from src.bot.commands import CommandHandler, is_admin
from src.config.settings import Settings
from src.models.price_reading import PriceReading, Prices
from src.models.station import Station
from src.services.poll_cycle import CycleReport, StationUpdate
from src.storage.history_store import HistoryStore
from src.storage.json_store import JsonStore

STATION_URL = "https://www.clever-tanken.de/tankstelle_details/12345"


def _report(changed_at: int = 0, checked: int = 2) -> CycleReport:
    now = datetime(2026, 1, 5, 12, tzinfo=timezone.utc)
    station = Station(url=STATION_URL, name="Aral")
    reading = PriceReading(STATION_URL, "Aral", STATION_URL, Prices(diesel=1.7), now)
    updates = [
        StationUpdate(
            station, reading,
            ["Diesel: 1.8€ → 1.7€"] if i < changed_at else [],
        )
        for i in range(checked)
    ]
    return CycleReport(started_at=now, finished_at=now, updates=updates)


class _HandlerTestBase(unittest.IsolatedAsyncioTestCase):

    def setUp(self) -> None:
        self.tmp_dir = Path(tempfile.mkdtemp())
        self.store = JsonStore(self.tmp_dir)
        (self.tmp_dir / "stations.json").write_text(
            json.dumps([{"name": "Aral <Nord>", "url": STATION_URL}]),
            encoding="utf-8",
        )
        self.poll_cycle = MagicMock()
        self.poll_cycle.context.store = self.store
        self.poll_cycle.context.subscribers_lock = asyncio.Lock()
        self.poll_cycle.run_once = AsyncMock(return_value=_report())
        self.handler = CommandHandler(self.poll_cycle)

    def tearDown(self) -> None:
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def _seed_reading(self, at: datetime, diesel: float = 1.779) -> None:
        history = HistoryStore()
        history.append(STATION_URL, PriceReading(
            STATION_URL, "Aral", STATION_URL,
            Prices(diesel=diesel, e5=1.899), at,
        ))
        self.store.save_history(history)

    async def ask(self, text: str, chat_id: str = "42") -> str:
        reply = await self.handler.handle(chat_id, text)
        assert reply is not None
        return reply


class TestDispatch(_HandlerTestBase):
    """Routing, unknown commands and failures."""

    async def test_plain_text_ignored(self) -> None:
        self.assertIsNone(await self.handler.handle("42", "hello"))

    async def test_unknown_command(self) -> None:
        self.assertIn("Unknown command", await self.ask("/frobnicate"))

    async def test_bot_suffix_and_case(self) -> None:
        self.assertIn("Fuel Price Tracker", await self.ask("/HELP@FuelBot"))

    async def test_start_registers_subscriber(self) -> None:
        await self.ask("/start", chat_id="7")
        self.assertIn("7", self.store.load_subscribers())

    async def test_handler_error_becomes_reply(self) -> None:
        self.poll_cycle.run_once.side_effect = RuntimeError("boom")
        with self.assertLogs("fuel_tracker.bot", level="ERROR"):
            reply = await self.ask("/check")
        self.assertIn("Something went wrong", reply)

    async def test_stations_escaped(self) -> None:
        reply = await self.ask("/stations")
        self.assertIn("1. Aral &lt;Nord&gt;", reply)


class TestPriceCommands(_HandlerTestBase):
    """/prices, /cached and /check."""

    async def test_check_no_changes(self) -> None:
        self.assertEqual(
            await self.ask("/check"), "✅ No changes (2 stations checked)",
        )

    async def test_check_with_changes(self) -> None:
        self.poll_cycle.run_once.return_value = _report(changed_at=1)
        self.assertEqual(
            await self.ask("/check"), "✅ Prices changed at 1 stations",
        )

    async def test_check_while_running(self) -> None:
        self.poll_cycle.run_once.return_value = None
        self.assertIn("already running", await self.ask("/check"))

    async def test_prices_runs_cycle_and_lists_latest(self) -> None:
        self._seed_reading(datetime.now(timezone.utc))
        reply = await self.ask("/prices")
        self.poll_cycle.run_once.assert_awaited_once()
        self.assertIn("Diesel: 1.779€", reply)
        self.assertIn("E5: 1.899€", reply)
        self.assertNotIn("E10", reply)

    async def test_prices_notes_coalesced_check(self) -> None:
        self.poll_cycle.run_once.return_value = None
        self.assertIn("already running", await self.ask("/prices"))

    async def test_cached_shows_age_without_fetching(self) -> None:
        self._seed_reading(datetime.now(timezone.utc) - timedelta(minutes=12))
        reply = await self.ask("/cached")
        self.poll_cycle.run_once.assert_not_awaited()
        self.assertRegex(reply, r"\(1[23] min ago\)")

    async def test_cached_without_data(self) -> None:
        self.assertIn("No data yet", await self.ask("/cached"))


class TestSettingsCommands(_HandlerTestBase):
    """Targets and per-subscriber switches."""

    async def test_settarget(self) -> None:
        reply = await self.ask("/settarget diesel 1,76")
        self.assertIn("✅ Target set!", reply)
        self.assertIn("🎯 DIESEL: 1.76€", reply)
        self.assertEqual(self.store.load_subscribers()["42"].targets.diesel, 1.76)

    async def test_settarget_rejections(self) -> None:
        cases = {
            "/settarget diesel": "Wrong format",
            "/settarget lpg 1.5": "Fuel type must be one of",
            "/settarget e5 abc": "Invalid price",
            "/settarget e5 3.5": "between 0 and 3",
            "/settarget e5 0": "between 0 and 3",
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertIn(expected, await self.ask(text))
        self.assertNotIn("42", self.store.load_subscribers())

    async def test_cleartarget_resets_alert_memory(self) -> None:
        await self.ask("/settarget e5 1.8")
        sub = self.store.load_subscribers()["42"]
        sub.last_alert_for(STATION_URL).set_price("e5", 1.79)
        self.store.update_subscriber(sub)

        self.assertIn("removed", await self.ask("/cleartarget e5"))
        sub = self.store.load_subscribers()["42"]
        self.assertIsNone(sub.targets.e5)
        self.assertIsNone(sub.last_alerts[STATION_URL].e5)

    async def test_toggles(self) -> None:
        self.assertEqual(await self.ask("/notifications"), "🔕 Notifications OFF")
        self.assertEqual(await self.ask("/notifications"), "🔔 Notifications ON")
        self.assertEqual(
            await self.ask("/changes"), "📊 Price change notifications ON",
        )

    async def test_fuel_selection(self) -> None:
        self.assertEqual(await self.ask("/fuel E5"), "⛽ Fuel type set to E5")
        self.assertIn("Usage", await self.ask("/fuel lpg"))
        reply = await self.ask("/settings")
        self.assertIn("Fuel type: <b>E5</b>", reply)

    async def test_settings_lists_targets(self) -> None:
        await self.ask("/settarget e10 1.7")
        reply = await self.ask("/settings")
        self.assertIn("E10: 1.7€", reply)
        self.assertIn("Notifications: ON", reply)

    async def test_settarget_waits_for_subscribers_lock(self) -> None:
        lock = self.poll_cycle.context.subscribers_lock
        await lock.acquire()
        pending = asyncio.create_task(self.ask("/settarget diesel 1.7"))
        await asyncio.sleep(0.05)
        self.assertFalse(pending.done())
        self.assertNotIn("42", self.store.load_subscribers())

        lock.release()
        self.assertIn("Target set", await asyncio.wait_for(pending, 5))
        self.assertEqual(self.store.load_subscribers()["42"].targets.diesel, 1.7)

    async def test_store_io_runs_off_the_event_loop(self) -> None:
        with patch(
            "src.bot.commands.asyncio.to_thread", wraps=asyncio.to_thread,
        ) as to_thread:
            await self.ask("/fuel e10")
            await self.ask("/stations")
        called = {c.args[0].__name__ for c in to_thread.call_args_list}
        self.assertLessEqual(
            {"get_or_create_subscriber", "update_subscriber", "load_stations"},
            called,
        )


class TestAnalyticsAndAdmin(_HandlerTestBase):
    """/analytics and the admin-only /stats."""

    async def test_analytics_insufficient(self) -> None:
        reply = await self.ask("/analytics")
        self.assertIn("Best time to refuel", reply)
        self.assertIn("Not enough data (0/20", reply)

    async def test_analytics_pattern(self) -> None:
        now = datetime.now(timezone.utc)
        history = HistoryStore()
        for i in range(24, 0, -1):
            history.append(STATION_URL, PriceReading(
                STATION_URL, "Aral", STATION_URL,
                Prices(diesel=1.7), now - timedelta(hours=i),
            ))
        self.store.save_history(history)
        reply = await self.ask("/analytics")
        self.assertIn("Observations: 24", reply)
        self.assertIn("Best day:", reply)

    async def test_stats_requires_admin(self) -> None:
        with patch.object(Settings, "ADMIN_IDS", ["1"]):
            self.assertFalse(is_admin("42"))
            self.assertIn("restricted", await self.ask("/stats"))

    async def test_stats_for_admin(self) -> None:
        self._seed_reading(datetime(2026, 1, 5, 12, tzinfo=timezone.utc))
        with patch.object(Settings, "ADMIN_IDS", ["42"]):
            reply = await self.ask("/stats")
        self.assertIn("Total readings: 1", reply)
        self.assertIn("Aral &lt;Nord&gt;", reply)
        self.assertIn("Retention: 14 days", reply)


if __name__ == "__main__":
    unittest.main()
