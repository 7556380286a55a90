"""Blocket Notifier — Interest Matcher.

Pairs recipients with the listings that satisfy their interest
profile. Disabled and inactive listings never match; listings a
recipient has already been sent are filtered out via the notification
log.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional, Sequence

from blocket_notifier.database import queries
from blocket_notifier.database.db import Database
from blocket_notifier.database.models import (
    InterestProfile,
    Listing,
    NotifyTarget,
    Recipient,
)
from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _within_window(profile: InterestProfile, listed: Optional[datetime]) -> bool:
    if profile.listed_after is None and profile.listed_before is None:
        return True
    if listed is None:
        return False
    listed = _as_aware(listed)
    if profile.listed_after is not None and listed < _as_aware(profile.listed_after):
        return False
    if profile.listed_before is not None and listed > _as_aware(profile.listed_before):
        return False
    return True


def listing_matches(profile: InterestProfile, listing: Listing) -> bool:
    """Check one listing against one profile.

    Args:
        profile: The recipient's criteria.
        listing: A stored, classified listing.

    Returns:
        True if every criterion in the profile is met.
    """
    if listing.disabled or not listing.active:
        return False

    if profile.max_rent is not None:
        rent = listing.rent_amount
        if rent is None or rent > profile.max_rent:
            return False

    if profile.location_pattern:
        if not listing.location:
            return False
        try:
            if not re.search(profile.location_pattern, listing.location, re.IGNORECASE):
                return False
        except re.error as e:
            logger.warning("Invalid location pattern %r: %s", profile.location_pattern, e)
            return False

    if not _within_window(profile, listing.listed_date):
        return False

    tags = listing.classification.to_dict() if listing.classification else {}
    for tag, wanted in profile.classification.items():
        has_tag = bool(tags.get(tag, False))
        if wanted and not has_tag:
            return False
        if not wanted and has_tag:
            return False

    return True


def match_targets(
    recipients: Sequence[Recipient], listings: Sequence[Listing],
) -> list[NotifyTarget]:
    """Pair each recipient with their matching listings.

    Recipients with no matches are left out.
    """
    targets: list[NotifyTarget] = []
    for recipient in recipients:
        matched = [l for l in listings if listing_matches(recipient.profile, l)]
        if matched:
            targets.append(NotifyTarget(recipient=recipient, listings=matched))
    return targets


async def list_recipients_interested_in(
    db: Database, listings: Sequence[Listing],
) -> list[NotifyTarget]:
    """Match stored recipients against listings, skipping ones already sent.

    Args:
        db: Active database instance.
        listings: Candidate listings from this run.

    Returns:
        One NotifyTarget per recipient with at least one unsent match.
    """
    if not listings:
        return []

    recipients = await queries.list_recipients(db)
    targets: list[NotifyTarget] = []
    for target in match_targets(recipients, listings):
        if target.recipient.id is not None:
            sent = await queries.get_notified_urls(db, target.recipient.id)
            target.listings = [l for l in target.listings if l.url not in sent]
        if target.listings:
            targets.append(target)

    logger.info(
        "Matched %d recipient(s) against %d listing(s)",
        len(targets), len(listings),
    )
    return targets
