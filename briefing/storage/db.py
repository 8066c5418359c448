"""Async SQLite subscriber store with WAL mode."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import aiosqlite

from briefing.errors import MalformedTopicsError, StoreUnavailableError
from briefing.storage.migrations import apply_migrations
from briefing.storage.models import DeliveryRecord, Subscriber

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Async SQLite manager for subscribers and delivery outcomes.

    Usage:
        db = DatabaseManager("data/briefing.db")
        await db.initialize()
        # ... use db ...
        await db.close()
    """

    def __init__(self, db_path: str, cache_size_mb: int = 16):
        self.db_path = db_path
        self.cache_size_mb = cache_size_mb
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create database, apply migrations, and configure pragmas."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        # Apply migrations synchronously (schema changes)
        apply_migrations(self.db_path)

        self._conn = await aiosqlite.connect(self.db_path)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute(f"PRAGMA cache_size=-{self.cache_size_mb * 1000}")
        await self._conn.execute("PRAGMA synchronous=NORMAL")

        logger.info("Database initialized: %s", self.db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> DatabaseManager:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # --- Subscribers ---

    async def upsert_subscriber(self, email: str, topics: Iterable[str]) -> Subscriber:
        """Insert a subscriber, or replace their topics and reactivate them."""
        assert self._conn is not None, "Database not initialized"
        email = Subscriber.normalize_email(email)
        categories = Subscriber.serialize_topics(topics)
        async with self._write_lock:
            await self._conn.execute(
                """INSERT INTO subscribers (email, categories, active)
                   VALUES (?, ?, 1)
                   ON CONFLICT(email) DO UPDATE SET
                       categories=excluded.categories,
                       active=1""",
                (email, categories),
            )
            await self._conn.commit()

        subscriber = await self.get_subscriber(email)
        assert subscriber is not None
        logger.info("Saved subscription for %s: %s", email, ", ".join(subscriber.topics))
        return subscriber

    async def deactivate_subscriber(self, email: str) -> bool:
        """Mark a subscriber inactive. Returns False if the email is unknown."""
        assert self._conn is not None, "Database not initialized"
        async with self._write_lock:
            cursor = await self._conn.execute(
                "UPDATE subscribers SET active = 0 WHERE email = ?",
                (Subscriber.normalize_email(email),),
            )
            await self._conn.commit()
        return cursor.rowcount > 0

    async def get_subscriber(self, email: str) -> Optional[Subscriber]:
        """Get a subscriber by email."""
        assert self._conn is not None, "Database not initialized"
        cursor = await self._conn.execute(
            "SELECT * FROM subscribers WHERE email = ?",
            (Subscriber.normalize_email(email),),
        )
        row = await cursor.fetchone()
        return Subscriber.from_row(dict(row)) if row else None

    async def get_active_subscriber_rows(self) -> List[Dict[str, Any]]:
        """Raw rows for all active subscribers, in subscription order.

        Categories are left unparsed so one malformed row cannot fail the whole read.
        """
        if self._conn is None:
            raise StoreUnavailableError("Database not initialized")
        try:
            cursor = await self._conn.execute(
                "SELECT * FROM subscribers WHERE active = 1 ORDER BY id"
            )
            rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Could not read subscribers: {e}") from e
        return [dict(r) for r in rows]

    async def get_active_subscribers(self) -> List[Subscriber]:
        """All active subscribers; rows with malformed categories are skipped."""
        subscribers = []
        for row in await self.get_active_subscriber_rows():
            try:
                subscribers.append(Subscriber.from_row(row))
            except MalformedTopicsError as e:
                logger.warning("Skipping subscriber %s: %s", row.get("email"), e)
        return subscribers

    async def count_subscribers(self, active_only: bool = False) -> int:
        assert self._conn is not None, "Database not initialized"
        sql = "SELECT COUNT(*) FROM subscribers"
        if active_only:
            sql += " WHERE active = 1"
        cursor = await self._conn.execute(sql)
        row = await cursor.fetchone()
        return row[0] if row else 0

    # --- Deliveries ---

    async def record_delivery(self, record: DeliveryRecord) -> None:
        """Persist one subscriber's outcome for a run."""
        assert self._conn is not None, "Database not initialized"
        async with self._write_lock:
            await self._conn.execute(
                """INSERT INTO deliveries (run_id, email, article_count, delivered, error)
                   VALUES (?, ?, ?, ?, ?)""",
                record.to_row(),
            )
            await self._conn.commit()

    async def get_recent_deliveries(self, limit: int = 20) -> List[DeliveryRecord]:
        assert self._conn is not None, "Database not initialized"
        cursor = await self._conn.execute(
            "SELECT * FROM deliveries ORDER BY id DESC LIMIT ?", (limit,)
        )
        rows = await cursor.fetchall()
        return [DeliveryRecord.from_row(dict(r)) for r in rows]

    # --- Maintenance ---

    async def get_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        assert self._conn is not None, "Database not initialized"
        stats: Dict[str, Any] = {
            "total_subscribers": await self.count_subscribers(),
            "active_subscribers": await self.count_subscribers(active_only=True),
        }

        cursor = await self._conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(delivered), 0) FROM deliveries"
        )
        row = await cursor.fetchone()
        stats["total_deliveries"] = row[0] if row else 0
        stats["successful_deliveries"] = row[1] if row else 0

        cursor = await self._conn.execute(
            "SELECT page_count * page_size as size FROM pragma_page_count(), pragma_page_size()"
        )
        row = await cursor.fetchone()
        stats["db_size_bytes"] = row[0] if row else 0

        return stats
