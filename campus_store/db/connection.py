"""Async SQLite connection pool with schema bootstrap.

Wraps `aiosqlite` connections in a fixed-size pool that is created once at
application startup and handed to the storage adapter.
"""

from __future__ import annotations

import asyncio
import time
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiosqlite

from campus_store.config import MEMORY_DATABASE, DatabaseSettings

CURRENT_SCHEMA_VERSION = 1
MEMORY_POOL_CAPACITY = 10

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    name TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now') || '000')
);

CREATE TABLE IF NOT EXISTS campuses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    location TEXT,
    description TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now') || '000')
);

CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    campus_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    program_type TEXT NOT NULL,
    date_time TEXT NOT NULL,
    end_date_time TEXT,
    location TEXT,
    participant_count INTEGER,
    rating REAL,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now') || '000'),
    FOREIGN KEY (campus_id) REFERENCES campuses(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_events_campus_date ON events (campus_id, date_time);

CREATE TABLE IF NOT EXISTS chat_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    message TEXT NOT NULL,
    response TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now') || '000'),
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_chat_sessions_user_created ON chat_sessions (user_id, created_at);
"""


async def _initialize_schema(conn: aiosqlite.Connection) -> None:
    """Create missing tables and stamp the schema version."""
    await conn.execute("PRAGMA foreign_keys = ON;")
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current_version = row[0] if row else 0

    await conn.executescript(SCHEMA_SQL)
    if current_version != CURRENT_SCHEMA_VERSION:
        await conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION};")
        logger.info("Database schema created, version set to %d", CURRENT_SCHEMA_VERSION)
    else:
        logger.info("Database schema is up-to-date (version %d)", current_version)
    await conn.commit()


class ConnectionPool:
    """Fixed-size pool of aiosqlite connections shared by all callers.

    Usage:
        pool = ConnectionPool("campus.db")
        await pool.open()
        async with pool.connection() as conn:
            await conn.execute(...)
        await pool.close()
    """

    def __init__(self, path: str, size: int = 5, timeout: float = 30.0):
        self.path = path
        self.size = size
        self.timeout = timeout
        self._pool: asyncio.Queue[aiosqlite.Connection] | None = None
        self._connections: list[aiosqlite.Connection] = []
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> "ConnectionPool":
        return cls(settings.path, size=settings.pool_size, timeout=settings.pool_timeout)

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    @property
    def is_memory(self) -> bool:
        return self.path == MEMORY_DATABASE

    async def _connect(self) -> aiosqlite.Connection:
        # Autocommit: every statement is its own transaction.
        conn = await aiosqlite.connect(
            self.path, timeout=self.timeout, cached_statements=128, isolation_level=None
        )
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys = ON;")
        await conn.commit()
        return conn

    async def open(self) -> None:
        """Bootstrap the schema and fill the pool. Safe to call repeatedly."""
        async with self._lock:
            if self._pool is not None:
                return

            # ":memory:" opens a new isolated database per connection, so the
            # whole pool shares one connection to see the same data.
            if self.is_memory:
                conn = await self._connect()
                await _initialize_schema(conn)
                self._connections = [conn]
                q: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue(maxsize=MEMORY_POOL_CAPACITY)
                for _ in range(MEMORY_POOL_CAPACITY):
                    q.put_nowait(conn)
                self._pool = q
                logger.info(
                    "Database connection pool initialized with a shared in-memory connection (capacity: %d)",
                    MEMORY_POOL_CAPACITY,
                )
                return

            q = asyncio.Queue(maxsize=self.size)
            for i in range(self.size):
                conn = await self._connect()
                if i == 0:
                    await _initialize_schema(conn)
                self._connections.append(conn)
                q.put_nowait(conn)
                logger.debug("Opened connection %d/%d", i + 1, self.size)
            self._pool = q
            logger.info("Database connection pool initialized with size %d", self.size)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Borrow a connection from the pool, opening the pool on first use."""
        if self._pool is None:
            logger.info("Initializing database connection pool")
            await self.open()
        pool = self._pool
        if pool is None:
            raise RuntimeError("Connection pool is not initialized")

        try:
            conn = await asyncio.wait_for(pool.get(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Timed out waiting for database connection")
            raise RuntimeError("Database connection timeout")
        logger.debug("Acquired database connection from pool")

        start_time = time.monotonic()
        try:
            yield conn
        except Exception:
            # Never hand a connection with an open transaction back to the pool.
            if conn.in_transaction:
                await conn.rollback()
                logger.debug("Rolled back open transaction before releasing connection")
            raise
        finally:
            elapsed = time.monotonic() - start_time
            logger.debug("Database connection held for %.3f seconds", elapsed)
            pool.put_nowait(conn)

    async def close(self) -> None:
        """Close all connections in the pool and reset its state."""
        async with self._lock:
            if self._pool is None:
                return
            for conn in self._connections:
                await conn.close()
            self._connections = []
            self._pool = None
            logger.info("Database connection pool closed")


async def open_pool(settings: DatabaseSettings) -> ConnectionPool:
    """Build a pool from *settings* and open it."""
    pool = ConnectionPool.from_settings(settings)
    await pool.open()
    return pool
