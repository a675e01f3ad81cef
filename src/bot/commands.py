# src/bot/commands.py

"""Chat command handlers: text in, HTML reply out."""

import asyncio
import html
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from src.config.settings import Settings
from src.models.price_reading import (
    FUEL_LABELS,
    FUEL_TYPES,
    PriceReading,
    format_price,
    is_valid_price,
)
from src.models.station import Station
from src.models.subscriber import Subscriber
from src.services.pattern_analyzer import (
    InsufficientData,
    analyze_weekly_patterns,
    history_stats,
)
from src.services.poll_cycle import PollCycle

logger = logging.getLogger("fuel_tracker.bot")

HELP_TEXT = (
    "⛽ <b>Fuel Price Tracker</b>\n\n"
    "<b>Prices</b>\n"
    "/prices - check now and show current prices\n"
    "/cached - last known prices, no fetch\n"
    "/check - run a price check now\n"
    "/stations - tracked stations\n"
    "/analytics - cheapest weekday and hour (last 7 days)\n\n"
    "<b>Alerts</b>\n"
    "/settarget diesel 1.76 - alert when Diesel ≤ 1.76€\n"
    "/cleartarget diesel - remove a target\n"
    "/settings - show your settings\n"
    "/notifications - switch all notifications on/off\n"
    "/changes - switch price change notifications on/off\n"
    "/fuel e5 - fuel type used for /analytics\n\n"
    "Prices are checked every "
    f"{Settings.POLL_INTERVAL_SECONDS // 60} minutes. History is kept "
    f"for {Settings.RETENTION_DAYS} days."
)


def is_admin(chat_id: str) -> bool:
    """Single allow-list check for operator commands."""
    return str(chat_id) in Settings.ADMIN_IDS


def _local_time(moment: datetime) -> str:
    return moment.astimezone(Settings.TIMEZONE).strftime("%d.%m.%Y %H:%M")


def _esc(text: str) -> str:
    return html.escape(text, quote=False)


def _format_station_prices(
    station: Station,
    reading: PriceReading | None,
    now: datetime | None = None,
) -> str:
    """One station block; with *now* the age of the reading is shown."""
    header = f"📍 <b>{_esc(station.display_name)}</b>"
    if reading is None:
        return f"{header}\n   <i>No data yet</i>"
    stamp = _local_time(reading.timestamp)
    if now is not None:
        age = int((now - reading.timestamp).total_seconds() // 60)
        stamp += f" ({age} min ago)"
    lines = [header, f"   <i>{stamp}</i>"]
    for fuel, price in reading.prices.resolved().items():
        lines.append(f"   💰 {FUEL_LABELS[fuel]}: {format_price(price)}€")
    return "\n".join(lines)


class CommandHandler:
    """Maps ``/command args`` messages to replies.

    Each handler catches its own failures; a broken command answers
    with a short error text and leaves the poll loop alone. Store
    access runs in worker threads, and subscriber writes share the
    poll cycle's ``subscribers_lock``.
    """

    def __init__(self, poll_cycle: PollCycle) -> None:
        self.poll_cycle = poll_cycle
        self.store = poll_cycle.context.store
        self.subscribers_lock = poll_cycle.context.subscribers_lock
        self._handlers: dict[
            str, Callable[[str, str], Awaitable[str]]
        ] = {
            "start": self.cmd_start,
            "help": self.cmd_help,
            "prices": self.cmd_prices,
            "cached": self.cmd_cached,
            "check": self.cmd_check,
            "stations": self.cmd_stations,
            "settarget": self.cmd_settarget,
            "cleartarget": self.cmd_cleartarget,
            "analytics": self.cmd_analytics,
            "settings": self.cmd_settings,
            "notifications": self.cmd_notifications,
            "changes": self.cmd_changes,
            "fuel": self.cmd_fuel,
            "stats": self.cmd_stats,
        }

    async def handle(self, chat_id: str, text: str) -> str | None:
        """Dispatch one message; non-command text gets no reply."""
        text = text.strip()
        if not text.startswith("/"):
            return None
        head, _, args = text.partition(" ")
        # "/prices@MyBot" in group chats
        command = head[1:].split("@", 1)[0].lower()
        handler = self._handlers.get(command)
        if handler is None:
            return "❓ Unknown command. Try /help"
        logger.info("Command /%s from %s", command, chat_id)
        try:
            return await handler(str(chat_id), args.strip())
        except Exception as exc:
            logger.error(
                "Command /%s failed for %s: %s",
                command, chat_id, exc,
                exc_info=True,
            )
            return "❌ Something went wrong. Please try again later."

    @asynccontextmanager
    async def _subscriber(self, chat_id: str) -> AsyncIterator[Subscriber]:
        """Load, yield and save one subscriber while holding the lock."""
        async with self.subscribers_lock:
            subscriber = await asyncio.to_thread(
                self.store.get_or_create_subscriber, chat_id,
            )
            yield subscriber
            await asyncio.to_thread(self.store.update_subscriber, subscriber)

    async def _read_subscriber(self, chat_id: str) -> Subscriber:
        async with self.subscribers_lock:
            return await asyncio.to_thread(
                self.store.get_or_create_subscriber, chat_id,
            )

    # ── General ──────────────────────────────────────────

    async def cmd_start(self, chat_id: str, args: str) -> str:
        await self._read_subscriber(chat_id)
        return HELP_TEXT

    async def cmd_help(self, chat_id: str, args: str) -> str:
        return HELP_TEXT

    async def cmd_stations(self, chat_id: str, args: str) -> str:
        stations = await asyncio.to_thread(self.store.load_stations)
        if not stations:
            return "No stations configured."
        lines = ["📋 <b>Tracked stations</b>", ""]
        lines += [
            f"{i}. {_esc(s.display_name)}"
            for i, s in enumerate(stations, start=1)
        ]
        return "\n".join(lines)

    # ── Prices ───────────────────────────────────────────

    async def _latest_block(self, now: datetime | None = None) -> str:
        stations = await asyncio.to_thread(self.store.load_stations)
        history = await asyncio.to_thread(self.store.load_history)
        return "\n\n".join(
            _format_station_prices(s, history.latest(s.station_id), now)
            for s in stations
        )

    async def cmd_prices(self, chat_id: str, args: str) -> str:
        report = await self.poll_cycle.run_once()
        note = (
            "" if report is not None
            else "<i>A check is already running; showing stored prices.</i>\n\n"
        )
        return f"⛽ <b>Current prices</b>\n\n{note}{await self._latest_block()}"

    async def cmd_cached(self, chat_id: str, args: str) -> str:
        now = datetime.now(timezone.utc)
        return (
            "💾 <b>Last known prices</b>\n<i>Not refreshed from the site</i>"
            f"\n\n{await self._latest_block(now)}\n\n"
            "💡 Use /prices for live prices"
        )

    async def cmd_check(self, chat_id: str, args: str) -> str:
        report = await self.poll_cycle.run_once()
        if report is None:
            return "⏳ A check is already running."
        if not report.changed:
            return (
                f"✅ No changes ({len(report.updates)} stations checked)"
            )
        return f"✅ Prices changed at {len(report.changed)} stations"

    # ── Targets & settings ───────────────────────────────

    async def cmd_settarget(self, chat_id: str, args: str) -> str:
        usage = "Usage: <code>/settarget diesel 1.76</code>"
        parts = args.split()
        if len(parts) != 2:
            return f"❌ Wrong format.\n{usage}"
        fuel = parts[0].lower()
        if fuel not in FUEL_TYPES:
            return "❌ Fuel type must be one of: diesel, e5, e10"
        try:
            price = round(float(parts[1].replace(",", ".")), 3)
        except ValueError:
            return f"❌ Invalid price.\n{usage}"
        if not is_valid_price(price):
            return (
                f"❌ Price must be between {Settings.PRICE_MIN:g} and "
                f"{Settings.PRICE_MAX:g}€"
            )

        async with self._subscriber(chat_id) as subscriber:
            subscriber.targets.set_price(fuel, price)
        return (
            "✅ Target set!\n\n"
            f"🎯 {fuel.upper()}: {format_price(price)}€\n\n"
            "You will be notified when the price drops to this level "
            "or below."
        )

    async def cmd_cleartarget(self, chat_id: str, args: str) -> str:
        fuel = args.lower()
        if fuel not in FUEL_TYPES:
            return "Usage: <code>/cleartarget diesel</code>"
        async with self._subscriber(chat_id) as subscriber:
            subscriber.targets.set_price(fuel, None)
            for memory in subscriber.last_alerts.values():
                memory.set_price(fuel, None)
        return f"🗑 Target for {fuel.upper()} removed."

    async def cmd_settings(self, chat_id: str, args: str) -> str:
        subscriber = await self._read_subscriber(chat_id)
        on_off = {True: "ON", False: "OFF"}
        lines = [
            "⚙️ <b>Settings</b>",
            "",
            f"🔔 Notifications: {on_off[subscriber.notifications]}",
            f"📊 All price changes: {on_off[subscriber.notify_changes]}",
            f"⛽ Fuel type: <b>{subscriber.selected_fuel_type.upper()}</b>",
        ]
        targets = subscriber.targets.resolved()
        if targets:
            lines += ["", "🎯 <b>Targets</b>"]
            lines += [
                f"{FUEL_LABELS[f]}: {format_price(p)}€"
                for f, p in targets.items()
            ]
        lines += ["", "Change with /notifications, /changes, /fuel"]
        return "\n".join(lines)

    async def cmd_notifications(self, chat_id: str, args: str) -> str:
        async with self._subscriber(chat_id) as subscriber:
            subscriber.notifications = not subscriber.notifications
        if subscriber.notifications:
            return "🔔 Notifications ON"
        return "🔕 Notifications OFF"

    async def cmd_changes(self, chat_id: str, args: str) -> str:
        async with self._subscriber(chat_id) as subscriber:
            subscriber.notify_changes = not subscriber.notify_changes
        state = "ON" if subscriber.notify_changes else "OFF"
        return f"📊 Price change notifications {state}"

    async def cmd_fuel(self, chat_id: str, args: str) -> str:
        fuel = args.lower()
        if fuel not in FUEL_TYPES:
            return "Usage: <code>/fuel diesel</code> (diesel, e5, e10)"
        async with self._subscriber(chat_id) as subscriber:
            subscriber.selected_fuel_type = fuel
        return f"⛽ Fuel type set to {fuel.upper()}"

    # ── Analytics ────────────────────────────────────────

    async def cmd_analytics(self, chat_id: str, args: str) -> str:
        subscriber = await self._read_subscriber(chat_id)
        fuel = subscriber.selected_fuel_type
        stations = await asyncio.to_thread(self.store.load_stations)
        history = await asyncio.to_thread(self.store.load_history)

        blocks = [
            f"📊 <b>Best time to refuel</b>\n"
            f"<i>Fuel: {fuel.upper()}, period: "
            f"{Settings.ANALYTICS_WINDOW_DAYS} days</i>"
        ]
        for station in stations:
            result = analyze_weekly_patterns(history, station.station_id, fuel)
            header = f"📍 <b>{_esc(station.display_name)}</b>"
            if isinstance(result, InsufficientData):
                blocks.append(f"{header}\n{result.message}")
                continue
            lines = [
                header,
                f"📈 Observations: {result.total_observations}",
                f"🏆 Best day: {result.best_day.day} "
                f"(avg {format_price(result.best_day.avg_price)}€)",
                f"⏰ Best hour: {result.best_hour.hour}:00 "
                f"(avg {format_price(result.best_hour.avg_price)}€)",
            ]
            if result.top_slots:
                lines.append("🎯 <b>Top time slots</b>")
                lines += [
                    f"{i}. {slot.day} {slot.hour}:00 - "
                    f"{format_price(slot.avg_price)}€"
                    for i, slot in enumerate(result.top_slots, start=1)
                ]
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks)

    # ── Admin ────────────────────────────────────────────

    async def cmd_stats(self, chat_id: str, args: str) -> str:
        if not is_admin(chat_id):
            return "⛔ This command is restricted to administrators."
        history, stations, size_kb = await asyncio.gather(
            asyncio.to_thread(self.store.load_history),
            asyncio.to_thread(self.store.load_stations),
            asyncio.to_thread(self.store.history_size_kb),
        )
        stats = history_stats(history, stations, size_kb)
        lines = ["📊 <b>Database statistics</b>", ""]
        for station in stats.stations:
            if not station.readings:
                continue
            lines.append(f"📍 <b>{_esc(station.name)}</b>")
            lines.append(f"   Readings: {station.readings}")
            if station.newest is not None:
                lines.append(f"   Latest: {_local_time(station.newest)}")
        lines += [
            "",
            f"Total readings: {stats.total_readings}",
            f"Period: {stats.period_days} days",
            f"Size: {stats.size_kb:.2f} KB",
            f"Retention: {Settings.RETENTION_DAYS} days",
        ]
        return "\n".join(lines)
