# src/services/service.py

"""Long-running service: poll timer plus Telegram bot."""

import asyncio
import logging

from src.bot.commands import CommandHandler
from src.bot.telegram_bot import TelegramBot
from src.config.settings import Settings
from src.services.poll_cycle import OrchestratorContext, PollCycle

logger = logging.getLogger("fuel_tracker.service")


async def run_timer(
    poll_cycle: PollCycle,
    stop: asyncio.Event,
    interval: float | None = None,
) -> None:
    """Run a cycle now, then every *interval* seconds until *stop*."""
    period = interval if interval is not None else Settings.POLL_INTERVAL_SECONDS
    while not stop.is_set():
        try:
            await poll_cycle.run_once()
        except Exception as exc:
            logger.error("Scheduled poll cycle failed: %s", exc, exc_info=True)
        try:
            await asyncio.wait_for(stop.wait(), timeout=period)
        except asyncio.TimeoutError:
            pass


async def run_service(
    context: OrchestratorContext,
    stop: asyncio.Event | None = None,
) -> None:
    """Timer and bot share one :class:`PollCycle` and its lock."""
    stop = stop or asyncio.Event()
    poll_cycle = PollCycle(context)
    bot = TelegramBot(CommandHandler(poll_cycle), context.notifier)
    logger.info(
        "Service started (interval %ds, data dir %s)",
        Settings.POLL_INTERVAL_SECONDS, context.store.data_dir,
    )
    await asyncio.gather(
        run_timer(poll_cycle, stop),
        bot.run(stop),
    )
    logger.info("Service stopped")
