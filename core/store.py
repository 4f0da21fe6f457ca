"""
Persistent Store Module
========================

Durable keyed storage over SQLite with fixed, named collections and a
TTL cache layer built on top.

Every public call is its own transaction. Blocking SQLite work runs in a
worker thread so callers on the event loop only suspend. Any SQLite or
filesystem failure drops the cached connection so the next call
reconnects.
"""

import asyncio
import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional

from market_client.errors import StoreUnavailable
from market_client.models import CacheEntry


logger = logging.getLogger(__name__)

WATCHLIST = "watchlist"
TRADES = "trades"
CACHE = "cache"

COLLECTIONS = (WATCHLIST, TRADES, CACHE)


class PersistentStore:
    """
    Keyed JSON item store.

    Each collection is a table of (key, item) rows. Rows come back in
    insertion order, and overwriting a key keeps its original position.
    """

    def __init__(
        self,
        db_path: str = "data/market_desk.db",
        clock: Optional[Callable[[], float]] = None,
    ):
        self.db_path = Path(db_path)
        self._clock = clock or time.time
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    # -- connection -------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            with conn:
                for name in COLLECTIONS:
                    conn.execute(
                        f"CREATE TABLE IF NOT EXISTS {name} ("
                        "key TEXT PRIMARY KEY, item TEXT NOT NULL)"
                    )
            self._conn = conn
            logger.debug(f"Store connected: {self.db_path}")
        return self._conn

    def _invalidate(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error:
                pass
            self._conn = None

    def _run(self, operation: Callable[[sqlite3.Connection], Any]) -> Any:
        with self._lock:
            try:
                conn = self._connect()
                with conn:
                    return operation(conn)
            except (sqlite3.Error, OSError) as e:
                self._invalidate()
                logger.error(f"Store operation failed on {self.db_path}: {e}")
                raise StoreUnavailable(str(e)) from e

    async def _execute(self, operation: Callable[[sqlite3.Connection], Any]) -> Any:
        return await asyncio.to_thread(self._run, operation)

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._invalidate()

    # -- items ------------------------------------------------------------------

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection!r}")

    async def put(self, collection: str, key: str, item: dict) -> None:
        """Insert or replace an item."""
        self._check_collection(collection)
        payload = json.dumps(item)

        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                f"INSERT INTO {collection} (key, item) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET item = excluded.item",
                (key, payload),
            )

        await self._execute(op)

    async def get(self, collection: str, key: str) -> Optional[dict]:
        """Get an item, or None if absent."""
        self._check_collection(collection)

        def op(conn: sqlite3.Connection) -> Optional[str]:
            row = conn.execute(
                f"SELECT item FROM {collection} WHERE key = ?", (key,)
            ).fetchone()
            return row[0] if row else None

        raw = await self._execute(op)
        return json.loads(raw) if raw is not None else None

    async def get_all(self, collection: str) -> list[dict]:
        """Get every item in insertion order."""
        self._check_collection(collection)

        def op(conn: sqlite3.Connection) -> list[str]:
            rows = conn.execute(f"SELECT item FROM {collection} ORDER BY rowid").fetchall()
            return [row[0] for row in rows]

        return [json.loads(raw) for raw in await self._execute(op)]

    async def delete(self, collection: str, key: str) -> None:
        """Delete an item. Missing keys are ignored."""
        self._check_collection(collection)

        def op(conn: sqlite3.Connection) -> None:
            conn.execute(f"DELETE FROM {collection} WHERE key = ?", (key,))

        await self._execute(op)

    async def clear(self, collection: str) -> int:
        """Delete every item in a collection. Returns the number removed."""
        self._check_collection(collection)

        def op(conn: sqlite3.Connection) -> int:
            return conn.execute(f"DELETE FROM {collection}").rowcount

        return await self._execute(op)

    # -- TTL cache --------------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def set_cache(self, key: str, payload: Any, ttl_minutes: float = 60) -> CacheEntry:
        """Cache a JSON-serializable payload for ttl_minutes."""
        entry = CacheEntry(
            key=key,
            payload=payload,
            expiry=self._now_ms() + int(ttl_minutes * 60 * 1000),
        )
        await self.put(CACHE, key, entry.to_dict())
        return entry

    async def get_cache(self, key: str) -> Optional[Any]:
        """
        Return a cached payload, or None on a miss.

        Expired entries are deleted here; there is no background sweep.
        A store failure is logged and reported as a miss.
        """
        try:
            raw = await self.get(CACHE, key)
            if raw is None:
                return None

            entry = CacheEntry.from_dict(raw)
            if entry.is_expired(self._now_ms()):
                await self.delete(CACHE, key)
                logger.debug(f"Cache entry expired: {key}")
                return None
            return entry.payload
        except StoreUnavailable as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
