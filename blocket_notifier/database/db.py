"""Blocket Notifier — SQLite Connection Manager.

Async SQLite connection management using aiosqlite: schema creation,
pragmas, and connection lifecycle.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)

# ── Schema Definitions ────────────────────────────────────
SCHEMA_SQL = """
-- ═══ Listings Table ═══
-- One row per source url for the listing's whole lifetime.
CREATE TABLE IF NOT EXISTS listings (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    url             TEXT    UNIQUE NOT NULL,
    owner           TEXT,
    body            TEXT,
    images          TEXT    DEFAULT '[]',
    title           TEXT,
    size            TEXT,
    rent            TEXT,
    location        TEXT,
    listed_date     TEXT,
    address         TEXT,
    phone           TEXT,
    home_type       TEXT,
    classified      INTEGER DEFAULT 0,
    cls_girls       INTEGER DEFAULT 0,
    cls_commuters   INTEGER DEFAULT 0,
    cls_shared      INTEGER DEFAULT 0,
    cls_swap        INTEGER DEFAULT 0,
    cls_no_kitchen  INTEGER DEFAULT 0,
    created_at      TEXT    NOT NULL,
    modified_at     TEXT    NOT NULL,
    removed_at      TEXT,
    active          INTEGER DEFAULT 1,
    disabled        INTEGER DEFAULT 0
);

-- ═══ Recipients Table ═══
-- Interest profile stored as JSON.
CREATE TABLE IF NOT EXISTS recipients (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT    NOT NULL UNIQUE,
    email           TEXT,
    phone           TEXT,
    notify_sms      INTEGER DEFAULT 0,
    notify_email    INTEGER DEFAULT 0,
    profile         TEXT    DEFAULT '{}',
    created_at      DATETIME DEFAULT (datetime('now', 'localtime'))
);

-- ═══ Notifications Table ═══
-- Successful deliveries, so a listing reaches a recipient once per channel.
CREATE TABLE IF NOT EXISTS notifications (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    recipient_id    INTEGER NOT NULL,
    listing_url     TEXT    NOT NULL,
    channel         TEXT    NOT NULL,
    delivery_ref    TEXT,
    sent_at         DATETIME DEFAULT (datetime('now', 'localtime')),
    UNIQUE (recipient_id, listing_url, channel),
    FOREIGN KEY (recipient_id) REFERENCES recipients(id) ON DELETE CASCADE
);

-- ═══ Performance Indexes ═══
CREATE INDEX IF NOT EXISTS idx_listings_active       ON listings(active);
CREATE INDEX IF NOT EXISTS idx_listings_modified     ON listings(modified_at);
CREATE INDEX IF NOT EXISTS idx_notifications_recip   ON notifications(recipient_id);
CREATE INDEX IF NOT EXISTS idx_notifications_url     ON notifications(listing_url);
"""


class Database:
    """Async SQLite database connection manager.

    Attributes:
        db_path: Resolved absolute path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        """Initialize the database manager.

        Args:
            db_path: Path to the SQLite file; parent directories are
                created on initialize().
        """
        self.db_path = Path(db_path).resolve()
        self._connection: aiosqlite.Connection | None = None
        logger.debug("Database manager initialized with path: %s", self.db_path)

    async def initialize(self) -> None:
        """Open the connection, set pragmas and create the schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Connecting to database: %s", self.db_path)
        self._connection = await aiosqlite.connect(str(self.db_path))

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA foreign_keys=ON")
        self._connection.row_factory = aiosqlite.Row

        await self._connection.executescript(SCHEMA_SQL)
        await self._connection.commit()

        logger.info("Database initialized — all tables ready")

    async def get_connection(self) -> aiosqlite.Connection:
        """Get the active connection, initializing it on first use."""
        if self._connection is None:
            await self.initialize()
        return self._connection

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("Database connection closed")

    async def __aenter__(self) -> "Database":
        await self.initialize()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
