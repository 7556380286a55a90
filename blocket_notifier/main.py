"""Blocket Notifier — Main Orchestrator.

Ties all components together: config, database, HTTP client, pipeline,
recipient transports, lead forwarding and the operator Telegram bot.

Runs the pipeline on an APScheduler interval, first pass immediately.
With --once it runs a single pass and exits.

Usage:
    python -m blocket_notifier
    python -m blocket_notifier --once
    python scripts/run.py
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import time
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from blocket_notifier.config import AppConfig, load_config, load_recipients
from blocket_notifier.crawler.client import BlocketClient
from blocket_notifier.database import queries
from blocket_notifier.database.db import Database
from blocket_notifier.notifier.dispatcher import NotificationDispatcher
from blocket_notifier.notifier.formatters import format_fatal_error, format_run_summary
from blocket_notifier.notifier.leads import LeadForwarder
from blocket_notifier.notifier.telegram_bot import TelegramNotifier
from blocket_notifier.notifier.transports import (
    BitlyShortener,
    HttpEmailGateway,
    HttpSmsGateway,
)
from blocket_notifier.pipeline.runner import ListingPipeline, RunReport
from blocket_notifier.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


class BlocketNotifier:
    """Main application orchestrator.

    Attributes:
        config: Full application configuration.
        db: Active database instance.
    """

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        """Initialize with default state. Call start() or run_once() to run."""
        self.config = config
        self.db: Optional[Database] = None
        self._client: Optional[BlocketClient] = None
        self._sms: Optional[HttpSmsGateway] = None
        self._email: Optional[HttpEmailGateway] = None
        self._shortener: Optional[BitlyShortener] = None
        self._leads: Optional[LeadForwarder] = None
        self._telegram: Optional[TelegramNotifier] = None
        self._pipeline: Optional[ListingPipeline] = None
        self._scheduler: Optional[AsyncIOScheduler] = None

        self._running = False
        self._run_count = 0
        self._run_lock = asyncio.Lock()
        self.last_report: Optional[RunReport] = None

    async def setup(self) -> None:
        """Load config, open the database and build every component."""
        if self.config is None:
            logger.info("═══ Loading configuration ═══")
            self.config = load_config()
        configure_logging(self.config.log_level, self.config.log_file or None)

        logger.info("═══ Initializing database ═══")
        self.db = Database(self.config.database_path)
        await self.db.initialize()
        logger.info(
            "Database ready: %d listing(s) stored",
            await queries.count_listings(self.db),
        )
        await self._seed_recipients()

        logger.info("═══ Initializing components ═══")
        notify = self.config.notify
        if notify.sms_gateway_url:
            self._sms = HttpSmsGateway(
                notify.sms_gateway_url, notify.sms_api_token, notify.sms_sender,
            )
        if notify.email_gateway_url:
            self._email = HttpEmailGateway(
                notify.email_gateway_url, notify.email_api_token, notify.email_sender,
            )
        if notify.shortener_token:
            self._shortener = BitlyShortener(notify.shortener_token)

        self._client = BlocketClient(self.config.crawler)
        self._leads = LeadForwarder(self.config.leads)
        self._telegram = TelegramNotifier(self.config.telegram)
        if not self._telegram.enabled:
            logger.info("Telegram operator alerts disabled")

        self._pipeline = ListingPipeline(
            self.config,
            self.db,
            self._client,
            NotificationDispatcher(
                notify, self._sms, self._email, self.db, self._shortener,
            ),
            self._leads,
        )

    async def _seed_recipients(self) -> None:
        """Upsert the recipients file into the database, matched by name."""
        recipients = load_recipients(self.config.recipients_path or None)
        for recipient in recipients:
            await queries.upsert_recipient(self.db, recipient)
        if recipients:
            logger.info("Recipients synced: %d", len(recipients))

    async def start(self) -> None:
        """Full startup: setup, schedule, first run, then keep alive."""
        self._running = True
        try:
            await self.setup()

            logger.info("═══ Setting up scheduler ═══")
            interval = self.config.crawler.scan_interval_minutes
            self._scheduler = AsyncIOScheduler()
            self._scheduler.add_job(
                self.run_pipeline,
                IntervalTrigger(minutes=interval),
                id="pipeline",
                max_instances=1,
                misfire_grace_time=60,
                name=f"Pipeline (every {interval}m)",
            )
            self._scheduler.start()

            logger.info("═══ Running first pipeline pass ═══")
            await self.run_pipeline()

            logger.info("═══ Entering main loop ═══")
            while self._running:
                await asyncio.sleep(1)

        except Exception as e:
            logger.error("Fatal error: %s", e)
            logger.error(traceback.format_exc())
            await self._alert_fatal(e)
        finally:
            await self.shutdown()

    async def run_once(self) -> Optional[RunReport]:
        """Setup, run a single pass and shut down."""
        try:
            await self.setup()
            return await self.run_pipeline()
        finally:
            await self.shutdown()

    async def run_pipeline(self) -> Optional[RunReport]:
        """Run one pipeline pass, skipping if the previous one is still running."""
        if self._run_lock.locked():
            logger.warning("Previous pipeline run still in progress, skipping")
            return None

        async with self._run_lock:
            self._run_count += 1
            logger.info(
                "Pipeline run #%d at %s",
                self._run_count, datetime.now().strftime("%H:%M:%S"),
            )
            start = time.monotonic()
            try:
                report = await self._pipeline.run()
            except Exception as e:
                logger.error("Pipeline run #%d failed: %s", self._run_count, e)
                logger.error(traceback.format_exc())
                await self._alert_fatal(e)
                return None

            self.last_report = report
            logger.info(
                "Run #%d done in %.1fs", self._run_count, time.monotonic() - start,
            )
            if self._telegram is not None and self._telegram.enabled:
                await self._telegram.send_message(format_run_summary(report))
            return report

    async def _alert_fatal(self, error: BaseException) -> None:
        if self._telegram is None or not self._telegram.enabled:
            return
        try:
            await self._telegram.send_message(format_fatal_error(error))
        except Exception as e:
            logger.warning("Failed to send fatal error alert: %s", e)

    def stop(self) -> None:
        """Ask the keep-alive loop to exit."""
        self._running = False

    async def shutdown(self) -> None:
        """Graceful shutdown: stop scheduler, close connections."""
        logger.info("═══ Shutting down ═══")
        self._running = False

        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

        for closable in (
            self._client, self._sms, self._email, self._shortener,
            self._leads, self._telegram,
        ):
            if closable is None:
                continue
            try:
                await closable.close()
            except Exception as e:
                logger.warning("Error closing %s: %s", type(closable).__name__, e)

        if self.db is not None:
            await self.db.close()

        logger.info("Shutdown complete")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="blocket-notifier",
        description="Crawl Blocket rental listings and notify interested recipients.",
    )
    parser.add_argument(
        "--once", action="store_true",
        help="run a single pipeline pass and exit",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    """Application entry point."""
    args = _parse_args(argv)

    Path("data").mkdir(exist_ok=True)
    Path("logs").mkdir(exist_ok=True)

    app = BlocketNotifier()

    if args.once:
        asyncio.run(app.run_once())
        return

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _signal_handler(sig, frame):
        logger.info("Signal %s received, shutting down...", sig)
        app.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()


if __name__ == "__main__":
    main()
