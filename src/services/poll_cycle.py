# src/services/poll_cycle.py

"""One polling pass over every configured station."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from src.config.settings import Settings
from src.filters.alert_engine import build_alerts
from src.filters.change_detector import diff_readings
from src.filters.schedule_gate import is_station_open
from src.models.price_reading import FUEL_TYPES, PriceReading, Prices
from src.models.station import Station
from src.models.subscriber import Subscriber
from src.scrapers.price_extractor import ExtractionFailure, PriceExtractor
from src.scrapers.station_fetcher import StationFetcher
from src.services.notifier import TelegramNotifier, format_alert_message
from src.storage.history_store import HistoryStore
from src.storage.json_store import JsonStore

logger = logging.getLogger("fuel_tracker.poll")


@dataclass
class OrchestratorContext:
    """The collaborators a poll cycle works with.

    Built once at start-up and handed to every consumer (timer, bot,
    CLI, TUI) instead of living in module globals.  Every
    read-modify-write of ``users.json`` holds ``subscribers_lock``.
    """

    store: JsonStore
    fetcher: StationFetcher
    extractor: PriceExtractor
    notifier: TelegramNotifier
    subscribers_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @classmethod
    def create(cls) -> "OrchestratorContext":
        return cls(
            store=JsonStore(),
            fetcher=StationFetcher(),
            extractor=PriceExtractor(),
            notifier=TelegramNotifier(),
        )


@dataclass
class StationUpdate:
    """A fresh reading and what changed against the previous one."""

    station: Station
    reading: PriceReading
    changes: list[str] = field(default_factory=lambda: list[str]())


@dataclass
class CycleReport:
    """Outcome of one :meth:`PollCycle.run_once`."""

    started_at: datetime
    finished_at: datetime | None = None
    updates: list[StationUpdate] = field(
        default_factory=lambda: list[StationUpdate]()
    )
    closed: list[str] = field(default_factory=lambda: list[str]())
    failed: list[str] = field(default_factory=lambda: list[str]())
    alerts_sent: int = 0
    alerts_failed: int = 0

    @property
    def changed(self) -> list[StationUpdate]:
        """Updates whose prices differ from the previous reading."""
        return [u for u in self.updates if u.changes]


class PollCycle:
    """Gate → fetch → extract → diff → append → prune, then alert.

    At most one cycle runs at a time.  A trigger that arrives while a
    cycle is in flight returns ``None`` straight away instead of racing
    on the shared history.
    """

    def __init__(self, context: OrchestratorContext) -> None:
        self.context = context
        self._lock = asyncio.Lock()
        self.last_report: CycleReport | None = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_once(self, now: datetime | None = None) -> CycleReport | None:
        if self._lock.locked():
            logger.info("Poll cycle already running; trigger ignored")
            return None
        async with self._lock:
            report = await self._run(now)
            self.last_report = report
            return report

    # ── Private helpers ──────────────────────────────────

    async def _run(self, now: datetime | None) -> CycleReport:
        store = self.context.store
        report = CycleReport(started_at=now or datetime.now(timezone.utc))
        stations = await asyncio.to_thread(store.load_stations)
        history = await asyncio.to_thread(store.load_history)
        logger.info("Poll cycle started for %d stations", len(stations))

        for station in stations:
            at = now or datetime.now(timezone.utc)
            if not is_station_open(station, at):
                report.closed.append(station.display_name)
                continue
            try:
                update = await self._poll_station(station, history, now)
            except Exception as exc:
                logger.error(
                    "Processing %s failed: %s",
                    station.display_name, exc,
                    exc_info=True,
                )
                update = None
            if update is None:
                report.failed.append(station.display_name)
            else:
                report.updates.append(update)

        await asyncio.to_thread(store.save_history, history)

        if report.updates:
            await self._deliver_alerts(report)

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            "Poll cycle done: %d updated (%d changed), %d closed, "
            "%d failed, %d alerts sent, %d alerts failed",
            len(report.updates), len(report.changed), len(report.closed),
            len(report.failed), report.alerts_sent, report.alerts_failed,
        )
        return report

    async def _poll_station(
        self,
        station: Station,
        history: HistoryStore,
        now: datetime | None,
    ) -> StationUpdate | None:
        """Read-diff-append-prune for one station."""
        html = await asyncio.to_thread(self.context.fetcher.fetch, station.url)
        if html is None:
            return None

        result = self.context.extractor.extract(html, station.url, now=now)
        if isinstance(result, ExtractionFailure):
            logger.warning(
                "No reading for %s: %s", station.display_name, result.reason,
            )
            return None

        # Configured names win over whatever the page heading says.
        reading = PriceReading(
            station_id=station.station_id,
            name=station.name or result.name,
            url=station.url,
            prices=result.prices,
            timestamp=result.timestamp,
        )

        previous = history.latest(station.station_id)
        changes = diff_readings(previous, reading)
        history.append(station.station_id, reading)
        history.prune(
            station.station_id,
            timedelta(days=Settings.RETENTION_DAYS),
            reading.timestamp,
        )
        if changes:
            logger.info(
                "Price change at %s: %s",
                station.display_name, "; ".join(changes),
            )
        return StationUpdate(station, reading, changes)

    async def _deliver_alerts(self, report: CycleReport) -> None:
        """Evaluate every subscriber against the fresh readings.

        Evaluation runs on a snapshot of ``users.json``; only the new
        alert memory is written back, merged into a fresh load, so
        settings changed by chat commands meanwhile survive.  Memory
        from an undelivered message is dropped and the alert retried.
        """
        store = self.context.store
        subscribers = await asyncio.to_thread(store.load_subscribers)
        if not subscribers:
            return

        memory: dict[str, dict[str, Prices]] = {}
        for subscriber in subscribers.values():
            for update in report.updates:
                station_id = update.reading.station_id
                alerts = build_alerts(
                    subscriber, update.reading, update.changes,
                )
                if alerts and not await self._send(
                    subscriber.chat_id,
                    format_alert_message(update.reading, alerts),
                ):
                    report.alerts_failed += 1
                    continue
                if alerts:
                    report.alerts_sent += 1
                if station_id in subscriber.last_alerts:
                    memory.setdefault(subscriber.chat_id, {})[station_id] = (
                        subscriber.last_alerts[station_id]
                    )

        if not memory:
            return
        async with self.context.subscribers_lock:
            fresh = await asyncio.to_thread(store.load_subscribers)
            for chat_id, stations in memory.items():
                current = fresh.get(chat_id)
                if current is None:
                    continue
                for station_id, prices in stations.items():
                    _merge_alert_memory(
                        current, subscribers[chat_id], station_id, prices,
                    )
            await asyncio.to_thread(store.save_subscribers, fresh)

    async def _send(self, chat_id: str, text: str) -> bool:
        try:
            return bool(await asyncio.to_thread(
                self.context.notifier.notify, chat_id, text,
            ))
        except Exception as exc:
            logger.error(
                "Alert delivery to %s raised: %s",
                chat_id, exc,
                exc_info=True,
            )
            return False


def _merge_alert_memory(
    current: Subscriber,
    evaluated: Subscriber,
    station_id: str,
    prices: Prices,
) -> None:
    """Copy per-fuel memory unless the target changed since evaluation."""
    target_memory = current.last_alert_for(station_id)
    for fuel in FUEL_TYPES:
        if current.targets.get(fuel) != evaluated.targets.get(fuel):
            continue
        target_memory.set_price(fuel, prices.get(fuel))
