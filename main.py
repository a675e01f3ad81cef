# main.py

"""Entry point for fuel_tracker (TUI, service or headless CLI)."""

import argparse
import asyncio
import logging
import sys

from src.config.logging_config import setup_logging
from src.config.settings import Settings
from src.models.price_reading import FUEL_TYPES

logger = logging.getLogger("fuel_tracker.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="fuel_tracker",
        description="Fuel price tracker with Telegram alerts.",
        epilog=f"Stations are read from {Settings.STATIONS_PATH}",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--serve",
        action="store_true",
        default=False,
        help="Run the poll timer and the Telegram bot until interrupted.",
    )
    mode.add_argument(
        "--check",
        action="store_true",
        default=False,
        help="Run one poll cycle and print the results.",
    )
    mode.add_argument(
        "--prices",
        action="store_true",
        default=False,
        help="Print the last known prices without fetching.",
    )
    mode.add_argument(
        "--analytics",
        nargs="?",
        const="diesel",
        default=None,
        choices=FUEL_TYPES,
        metavar="FUEL",
        help="Weekly pattern analysis (diesel, e5, e10; default diesel).",
    )
    mode.add_argument(
        "--stats",
        action="store_true",
        default=False,
        help="Print history database statistics.",
    )
    mode.add_argument(
        "--health",
        action="store_true",
        default=False,
        help="Run a connectivity health check on all stations.",
    )
    mode.add_argument(
        "--chart",
        default=None,
        metavar="URL",
        help="Export a Plotly HTML price chart for one station.",
    )
    mode.add_argument(
        "--export-csv",
        action="store_true",
        default=False,
        dest="export_csv",
        help="Export the retained price history as CSV.",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="table",
        dest="output_format",
        help="Output format for --check and --prices (default: table).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Show INFO log messages on the console.",
    )
    return parser


def _run_tui() -> None:
    """Launch the interactive Textual TUI."""
    from src.ui.app import StationDashboardApp

    try:
        app = StationDashboardApp()
        app.run()
    except Exception:
        logger.critical("Fatal error during TUI run", exc_info=True)
        raise
    finally:
        logger.info("fuel_tracker TUI shutting down")


def _run_service() -> None:
    """Run the long-lived poll timer and bot."""
    from src.services.poll_cycle import OrchestratorContext
    from src.services.service import run_service

    try:
        asyncio.run(run_service(OrchestratorContext.create()))
    except KeyboardInterrupt:
        logger.info("Service interrupted")


def _run_cli(args: argparse.Namespace) -> None:
    """Run one headless command and exit with its code."""
    from src.cli import runner
    from src.services.poll_cycle import OrchestratorContext
    from src.storage.json_store import JsonStore

    if args.check:
        exit_code = asyncio.run(
            runner.run_check(OrchestratorContext.create(), args.output_format)
        )
    else:
        store = JsonStore()
        if args.prices:
            exit_code = runner.run_prices(store, args.output_format)
        elif args.analytics is not None:
            exit_code = runner.run_analytics(store, args.analytics)
        elif args.stats:
            exit_code = runner.run_stats(store)
        elif args.health:
            exit_code = asyncio.run(runner.run_health_check(store))
        elif args.chart is not None:
            exit_code = runner.run_chart(store, args.chart)
        else:
            exit_code = runner.run_export_csv(store)
    sys.exit(exit_code)


def main() -> None:
    """Route to TUI (no args), service (--serve) or a CLI command."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(verbose=args.verbose or args.serve)
    logger.info("fuel_tracker starting, log file: %s", log_file)

    if args.serve:
        _run_service()
    elif any((
        args.check, args.prices, args.analytics is not None, args.stats,
        args.health, args.chart is not None, args.export_csv,
    )):
        _run_cli(args)
    else:
        _run_tui()


if __name__ == "__main__":
    main()
