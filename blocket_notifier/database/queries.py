"""Blocket Notifier — Database Query Operations.

All async database reads and writes. Every function:
  - Uses parameterized queries (? placeholders, never f-strings for values)
  - Commits after writes
  - Returns dataclasses or clean dictionaries
  - Logs operations at DEBUG level
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from blocket_notifier.database.db import Database
from blocket_notifier.database.models import Listing, Recipient
from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)

_LISTING_COLUMNS = [
    "url", "owner", "body", "images", "title", "size", "rent", "location",
    "listed_date", "address", "phone", "home_type", "classified",
    "cls_girls", "cls_commuters", "cls_shared", "cls_swap", "cls_no_kitchen",
    "created_at", "modified_at", "removed_at", "active", "disabled",
]


def _row_to_dict(row: Any) -> dict[str, Any]:
    """Convert an aiosqlite Row to a plain dictionary."""
    return dict(row)


# ═══════════════════════════════════════════════════════════
# Listing Operations
# ═══════════════════════════════════════════════════════════


async def find_listing_by_url(db: Database, url: str) -> Optional[Listing]:
    """Look up the stored listing for a source url.

    Args:
        db: Active database instance.
        url: The listing's natural key.

    Returns:
        The stored Listing, or None if the url has never been stored.
    """
    conn = await db.get_connection()
    cursor = await conn.execute("SELECT * FROM listings WHERE url = ?", (url,))
    row = await cursor.fetchone()
    logger.debug("find_listing_by_url(%s) → %s", url, "found" if row else "not found")
    return Listing.from_db_row(_row_to_dict(row)) if row is not None else None


async def upsert_listing(db: Database, listing: Listing) -> Listing:
    """Insert a listing or overwrite the stored row with the same url.

    ``created_at`` is never overwritten once set.

    Args:
        db: Active database instance.
        listing: The listing to persist; must carry created_at and
            modified_at.

    Returns:
        The stored Listing as read back from the database.
    """
    conn = await db.get_connection()
    d = listing.to_db_dict()
    placeholders = ", ".join("?" for _ in _LISTING_COLUMNS)
    updates = ", ".join(
        f"{col} = excluded.{col}"
        for col in _LISTING_COLUMNS if col not in ("url", "created_at")
    )
    await conn.execute(
        f"""
        INSERT INTO listings ({", ".join(_LISTING_COLUMNS)})
        VALUES ({placeholders})
        ON CONFLICT(url) DO UPDATE SET {updates}
        """,
        tuple(d[col] for col in _LISTING_COLUMNS),
    )
    await conn.commit()
    logger.debug("Upserted listing: %s", listing.url)

    stored = await find_listing_by_url(db, listing.url)
    if stored is None:
        raise RuntimeError(f"Listing vanished right after upsert: {listing.url}")
    return stored


async def count_listings(db: Database, active_only: bool = False) -> int:
    """Count stored listings."""
    conn = await db.get_connection()
    sql = "SELECT COUNT(*) AS cnt FROM listings"
    if active_only:
        sql += " WHERE active = 1"
    cursor = await conn.execute(sql)
    row = await cursor.fetchone()
    return row["cnt"]


# ═══════════════════════════════════════════════════════════
# Recipient Operations
# ═══════════════════════════════════════════════════════════


async def insert_recipient(db: Database, recipient: Recipient) -> Recipient:
    """Store a new recipient and return it with its row id."""
    conn = await db.get_connection()
    d = recipient.to_db_dict()
    cursor = await conn.execute(
        """
        INSERT INTO recipients (name, email, phone, notify_sms, notify_email, profile)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            d["name"], d["email"], d["phone"],
            d["notify_sms"], d["notify_email"], d["profile"],
        ),
    )
    await conn.commit()
    recipient.id = cursor.lastrowid
    logger.debug("Inserted recipient %d: %s", recipient.id, recipient.name)
    return recipient


async def upsert_recipient(db: Database, recipient: Recipient) -> Recipient:
    """Insert a recipient or overwrite the stored one with the same name.

    Returns:
        The stored Recipient as read back from the database.
    """
    conn = await db.get_connection()
    d = recipient.to_db_dict()
    await conn.execute(
        """
        INSERT INTO recipients (name, email, phone, notify_sms, notify_email, profile)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(name) DO UPDATE SET
            email = excluded.email,
            phone = excluded.phone,
            notify_sms = excluded.notify_sms,
            notify_email = excluded.notify_email,
            profile = excluded.profile
        """,
        (
            d["name"], d["email"], d["phone"],
            d["notify_sms"], d["notify_email"], d["profile"],
        ),
    )
    await conn.commit()

    cursor = await conn.execute(
        "SELECT * FROM recipients WHERE name = ?", (recipient.name,),
    )
    row = await cursor.fetchone()
    if row is None:
        raise RuntimeError(f"Recipient vanished right after upsert: {recipient.name}")
    stored = Recipient.from_db_row(_row_to_dict(row))
    logger.debug("Upserted recipient %d: %s", stored.id, stored.name)
    return stored


async def list_recipients(db: Database) -> list[Recipient]:
    """Return every stored recipient, oldest first."""
    conn = await db.get_connection()
    cursor = await conn.execute("SELECT * FROM recipients ORDER BY id ASC")
    rows = await cursor.fetchall()
    result = [Recipient.from_db_row(_row_to_dict(row)) for row in rows]
    logger.debug("Recipients: %d", len(result))
    return result


# ═══════════════════════════════════════════════════════════
# Notification Log
# ═══════════════════════════════════════════════════════════


async def record_notification(
    db: Database,
    recipient_id: int,
    listing_urls: Iterable[str],
    channel: str,
    delivery_ref: Optional[str] = None,
) -> None:
    """Record that listings were delivered to a recipient on a channel.

    Re-recording the same (recipient, url, channel) is a no-op.
    """
    conn = await db.get_connection()
    urls = list(listing_urls)
    await conn.executemany(
        """
        INSERT OR IGNORE INTO notifications
            (recipient_id, listing_url, channel, delivery_ref)
        VALUES (?, ?, ?, ?)
        """,
        [(recipient_id, url, channel, delivery_ref) for url in urls],
    )
    await conn.commit()
    logger.debug(
        "Recorded %d %s notification(s) for recipient %d",
        len(urls), channel, recipient_id,
    )


async def get_notified_urls(db: Database, recipient_id: int) -> set[str]:
    """Return every listing url already delivered to a recipient."""
    conn = await db.get_connection()
    cursor = await conn.execute(
        "SELECT DISTINCT listing_url FROM notifications WHERE recipient_id = ?",
        (recipient_id,),
    )
    rows = await cursor.fetchall()
    return {row["listing_url"] for row in rows}
