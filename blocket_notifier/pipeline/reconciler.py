"""Blocket Notifier — Historical Reconciler.

Decides, per crawled listing, whether the store needs a new record, an
update, a removal mark, or nothing at all, and writes accordingly.

Field comparison is driven by COMPARED_FIELDS: each entry names a
Listing attribute and how to compare it. Bookkeeping fields (id,
timestamps, active) are never compared.

Lifecycle rules:
  - A url is stored once; later crawls update the same record.
  - modified_at is refreshed on every write.
  - A listing reported as disabled gets removed_at and active=False,
    once. An inactive record never becomes active again.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from blocket_notifier.database import queries
from blocket_notifier.database.db import Database
from blocket_notifier.database.models import Classification, Listing
from blocket_notifier.utils.executor import Outcome
from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
REMOVED = "removed"
SKIPPED = "skipped"


# ═══════════════════════════════════════════════════════════
# Field Comparison
# ═══════════════════════════════════════════════════════════


def _same_value(a: Any, b: Any) -> bool:
    return a == b


def _same_set(a: Any, b: Any) -> bool:
    return set(a or ()) == set(b or ())


def _same_instant(a: Optional[datetime], b: Optional[datetime]) -> bool:
    if a is None or b is None:
        return a is b
    # Naive timestamps are taken as UTC so mixed sources compare by instant
    if a.tzinfo is None:
        a = a.replace(tzinfo=timezone.utc)
    if b.tzinfo is None:
        b = b.replace(tzinfo=timezone.utc)
    return a == b


def _same_nested(a: Optional[Classification], b: Optional[Classification]) -> bool:
    return (a.to_dict() if a else None) == (b.to_dict() if b else None)


STRATEGIES: dict[str, Callable[[Any, Any], bool]] = {
    "value": _same_value,
    "set": _same_set,
    "instant": _same_instant,
    "nested": _same_nested,
}

COMPARED_FIELDS: tuple[tuple[str, str], ...] = (
    ("owner", "value"),
    ("body", "value"),
    ("images", "set"),
    ("title", "value"),
    ("size", "value"),
    ("rent", "value"),
    ("location", "value"),
    ("listed_date", "instant"),
    ("address", "value"),
    ("phone", "value"),
    ("home_type", "value"),
    ("classification", "nested"),
    ("disabled", "value"),
)

# Fields whose missing value on the incoming side means "not observed".
_OPTIONAL_OBSERVATIONS = frozenset(
    name for name, strategy in COMPARED_FIELDS if strategy != "set"
) - {"disabled"}


def _observed(name: str, value: Any) -> bool:
    if name in _OPTIONAL_OBSERVATIONS:
        return value is not None
    if name == "images":
        return bool(value)
    return True


def diff_listings(stored: Listing, incoming: Listing) -> list[str]:
    """Name the compared fields whose values differ.

    Args:
        stored: The record currently in the store.
        incoming: The freshly crawled listing for the same url.

    Returns:
        Field names in COMPARED_FIELDS order; empty when nothing changed.
    """
    changed: list[str] = []
    for name, strategy in COMPARED_FIELDS:
        new = getattr(incoming, name)
        if not _observed(name, new):
            continue
        if not STRATEGIES[strategy](getattr(stored, name), new):
            changed.append(name)
    return changed


def _apply_observed(stored: Listing, incoming: Listing, names: Sequence[str]) -> Listing:
    return replace(stored, **{name: getattr(incoming, name) for name in names})


# ═══════════════════════════════════════════════════════════
# Reconciler
# ═══════════════════════════════════════════════════════════


@dataclass
class Reconciliation:
    """What happened to one listing.

    Attributes:
        status: One of created, updated, unchanged, removed, skipped.
        listing: The stored record after reconciliation, or the incoming
            listing when nothing was stored.
        changed_fields: Compared fields that differed.
    """

    status: str
    listing: Listing
    changed_fields: list[str] = field(default_factory=list)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoricalReconciler:
    """Keeps the listings table in step with the latest crawl.

    Attributes:
        db: Active database instance.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(self, db: Database, clock: Clock = utcnow) -> None:
        self.db = db
        self.clock = clock

    async def reconcile(self, listing: Listing) -> Reconciliation:
        """Reconcile one crawled listing against its stored record.

        Args:
            listing: Crawled and classified listing.

        Returns:
            The Reconciliation describing the write performed.
        """
        stored = await queries.find_listing_by_url(self.db, listing.url)
        now = self.clock()

        if stored is None:
            if listing.disabled:
                logger.debug("Skipping unseen disabled listing: %s", listing.url)
                return Reconciliation(SKIPPED, listing)
            created = await queries.upsert_listing(self.db, replace(
                listing,
                id=None,
                created_at=now,
                modified_at=now,
                removed_at=None,
                active=True,
            ))
            logger.debug("Stored new listing: %s", listing.url)
            return Reconciliation(CREATED, created)

        if listing.disabled:
            if stored.removed_at is not None or not stored.active:
                if stored.disabled:
                    return Reconciliation(UNCHANGED, stored)
                # Gone again after re-appearing; removed_at keeps the first removal
                redisabled = await queries.upsert_listing(self.db, replace(
                    stored, disabled=True, active=False, modified_at=now,
                ))
                logger.info("Listing removed from source again: %s", listing.url)
                return Reconciliation(UPDATED, redisabled, ["disabled"])
            removed = await queries.upsert_listing(self.db, replace(
                stored,
                disabled=True,
                active=False,
                removed_at=now,
                modified_at=now,
            ))
            logger.info("Listing removed from source: %s", listing.url)
            return Reconciliation(REMOVED, removed, ["disabled"])

        changed = diff_listings(stored, listing)
        if not changed:
            return Reconciliation(UNCHANGED, stored)

        updated = _apply_observed(stored, listing, changed)
        updated = replace(updated, modified_at=now, active=stored.active)
        updated = await queries.upsert_listing(self.db, updated)
        logger.debug("Updated %s: %s", listing.url, ", ".join(changed))
        return Reconciliation(UPDATED, updated, changed)

    async def reconcile_many(
        self, listings: Sequence[Listing],
    ) -> list[Outcome[Reconciliation]]:
        """Reconcile listings one by one, capturing per-item failures.

        Writes run sequentially on the single SQLite connection.

        Returns:
            One Outcome per listing, in input order.
        """
        outcomes: list[Outcome[Reconciliation]] = []
        counts: dict[str, int] = {}
        for listing in listings:
            try:
                result = await self.reconcile(listing)
            except Exception as e:
                logger.warning("Reconcile failed for %s: %s", listing.url, e)
                outcomes.append(Outcome(error=e))
                continue
            counts[result.status] = counts.get(result.status, 0) + 1
            outcomes.append(Outcome(value=result))

        logger.info(
            "Reconciled %d listing(s): %s",
            len(listings),
            ", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "none",
        )
        return outcomes
