"""Blocket Notifier — Listing Pipeline.

Runs one complete pass over the source:
  1. Crawl the index for listing stubs
  2. Fetch and parse every detail page (in waves)
  3. Classify the listings
  4. Reconcile them against the store
  5. Match new and changed listings to recipients and notify them
  6. Forward new listings that qualify as leads

Per-listing failures are recorded in the RunReport and never abort
the run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional

from blocket_notifier.analyzer.classifier import classify
from blocket_notifier.config import AppConfig
from blocket_notifier.crawler.client import BlocketClient
from blocket_notifier.crawler.detail_scraper import DetailScraper, PhoneRevealer
from blocket_notifier.crawler.index_crawler import IndexCrawler
from blocket_notifier.database.db import Database
from blocket_notifier.database.models import Listing
from blocket_notifier.notifier.dispatcher import NotificationDispatcher
from blocket_notifier.notifier.leads import LeadForwarder
from blocket_notifier.notifier.matcher import list_recipients_interested_in
from blocket_notifier.pipeline.reconciler import (
    CREATED,
    REMOVED,
    SKIPPED,
    UNCHANGED,
    UPDATED,
    Clock,
    HistoricalReconciler,
    utcnow,
)
from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)

FAILED = "failed"


@dataclass
class ItemResult:
    """What one crawled url ended up as.

    Attributes:
        url: The listing url.
        listing: Stored (or parsed) listing, None if it never got that far.
        error: The captured failure, if any.
        status: Reconciliation status, or "failed".
    """

    url: str
    listing: Optional[Listing] = None
    error: Optional[BaseException] = None
    status: str = FAILED


@dataclass
class RunReport:
    """Summary of one pipeline run."""

    items: list[ItemResult] = field(default_factory=list)
    stubs_found: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    leads_forwarded: int = 0
    duration_seconds: float = 0.0

    def _count(self, status: str) -> int:
        return sum(1 for item in self.items if item.status == status)

    @property
    def created(self) -> int:
        return self._count(CREATED)

    @property
    def updated(self) -> int:
        return self._count(UPDATED)

    @property
    def unchanged(self) -> int:
        return self._count(UNCHANGED)

    @property
    def removed(self) -> int:
        return self._count(REMOVED)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stubs_found": self.stubs_found,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "removed": self.removed,
            "skipped": self.skipped,
            "failed": self.failed,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "leads_forwarded": self.leads_forwarded,
            "duration_seconds": round(self.duration_seconds, 2),
        }


class ListingPipeline:
    """Crawl → details → classify → reconcile → notify → leads.

    Attributes:
        config: Full application configuration.
        db: Active database instance.
        client: HTTP client shared by the crawler and detail scraper.
        dispatcher: Recipient notification dispatcher.
        leads: Lead forwarder.
    """

    def __init__(
        self,
        config: AppConfig,
        db: Database,
        client: BlocketClient,
        dispatcher: NotificationDispatcher,
        leads: LeadForwarder,
        phone_revealer: Optional[PhoneRevealer] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.config = config
        self.db = db
        self.client = client
        self.dispatcher = dispatcher
        self.leads = leads
        self._crawler = IndexCrawler(config.crawler, client)
        self._details = DetailScraper(
            client, phone_revealer, wave_size=config.crawler.detail_wave_size,
        )
        self._reconciler = HistoricalReconciler(db, clock)

    async def run(self) -> RunReport:
        """Run one full pass.

        Returns:
            The RunReport with one ItemResult per crawled url.
        """
        start_time = time.monotonic()
        report = RunReport()

        logger.info("═══ Pipeline Run Starting ═══")

        # ── Step 1: Index ────────────────────────────────
        stubs = await self._crawler.fetch_all_index_pages()
        report.stubs_found = len(stubs)

        # ── Step 2: Details ──────────────────────────────
        detail_outcomes = await self._details.fetch_many_details(stubs)
        fetched: list[tuple[ItemResult, Listing]] = []
        for stub, outcome in zip(stubs, detail_outcomes):
            item = ItemResult(url=stub.url)
            report.items.append(item)
            if outcome.ok:
                fetched.append((item, outcome.value))
            else:
                item.error = outcome.error

        # ── Step 3: Classify ─────────────────────────────
        classified = classify([listing for _, listing in fetched])

        # ── Step 4: Reconcile ────────────────────────────
        recon_outcomes = await self._reconciler.reconcile_many(classified)
        changed: list[Listing] = []
        created: list[Listing] = []
        for (item, _), listing, outcome in zip(fetched, classified, recon_outcomes):
            if not outcome.ok:
                item.listing = listing
                item.error = outcome.error
                continue
            result = outcome.value
            item.listing = result.listing
            item.status = result.status
            if result.status in (CREATED, UPDATED):
                changed.append(result.listing)
            if result.status == CREATED:
                created.append(result.listing)

        # ── Step 5: Match & notify ───────────────────────
        targets = await list_recipients_interested_in(self.db, changed)
        deliveries = await self.dispatcher.dispatch(targets)
        report.notifications_sent = sum(1 for d in deliveries if d.ok)
        report.notifications_failed = len(deliveries) - report.notifications_sent

        # ── Step 6: Leads ────────────────────────────────
        lead_outcomes = await self.leads.forward(created)
        report.leads_forwarded = sum(1 for o in lead_outcomes if o.ok)

        report.duration_seconds = time.monotonic() - start_time
        logger.info(
            "═══ Pipeline Run Complete (%.1fs) ═══ %s",
            report.duration_seconds,
            ", ".join(f"{k}={v}" for k, v in report.to_dict().items() if k != "duration_seconds"),
        )
        return report
