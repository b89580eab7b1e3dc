"""
Shared connection pool for RecallStore.

One ``StorePool`` holds at most one ``aiosqlite.Connection`` per resolved
database path, plus the lock that serialises write transactions on it. Several
``RecallStore`` objects opened on the same file (the sync engine, the team
sync, a CLI query) therefore share one connection and never race each other
for SQLite's single writer slot.

Usage::

    pool = StorePool()
    store = RecallStore(config, pool=pool)
    await store.initialize()
    ...
    await pool.close_all()
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite
import structlog

_logger = structlog.get_logger("ccrecall.store.pool")


def _resolve(db_path: str) -> str:
    return str(Path(db_path).expanduser().resolve())


async def open_connection(
    db_path: str,
    *,
    wal_mode: bool = True,
    connection_timeout: float = 30.0,
) -> aiosqlite.Connection:
    """
    Open and configure a connection to *db_path*, creating parent directories.

    Foreign keys are enforced and rows are returned as ``aiosqlite.Row``.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(db_path, timeout=connection_timeout)
    try:
        conn.row_factory = aiosqlite.Row
        if wal_mode:
            await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA foreign_keys=ON")
        await conn.execute("PRAGMA synchronous=NORMAL")
    except Exception:
        await conn.close()
        raise
    return conn


class StorePool:
    """
    Process-scoped registry of open connections, keyed by resolved path.

    Only safe within a single asyncio event loop.
    """

    def __init__(self) -> None:
        self._connections: dict[str, aiosqlite.Connection] = {}
        self._write_locks: dict[str, asyncio.Lock] = {}
        self._open_locks: dict[str, asyncio.Lock] = {}

    async def acquire(
        self,
        db_path: str,
        *,
        wal_mode: bool = True,
        connection_timeout: float = 30.0,
    ) -> aiosqlite.Connection:
        """
        Return the shared connection for *db_path*, opening it on first use.

        Args:
            db_path: Path to the database file.
            wal_mode: Enable WAL journal mode when the connection is opened.
            connection_timeout: SQLite busy timeout in seconds.
        """
        resolved = _resolve(db_path)
        if resolved in self._connections:
            return self._connections[resolved]

        open_lock = self._open_locks.setdefault(resolved, asyncio.Lock())
        async with open_lock:
            if resolved in self._connections:
                return self._connections[resolved]
            conn = await open_connection(
                resolved, wal_mode=wal_mode, connection_timeout=connection_timeout
            )
            self._connections[resolved] = conn
            self._write_locks[resolved] = asyncio.Lock()
            _logger.debug("pool_connection_opened", db_path=resolved)
            return conn

    def write_lock(self, db_path: str) -> asyncio.Lock:
        """
        Return the write-serialisation lock for *db_path*.

        Raises:
            KeyError: If ``acquire()`` has not been called for this path.
        """
        return self._write_locks[_resolve(db_path)]

    async def close_path(self, db_path: str) -> None:
        """Close and forget the connection for a single path."""
        resolved = _resolve(db_path)
        conn = self._connections.pop(resolved, None)
        self._write_locks.pop(resolved, None)
        self._open_locks.pop(resolved, None)
        if conn is not None:
            await conn.close()
            _logger.debug("pool_connection_closed", db_path=resolved)

    async def close_all(self) -> None:
        """Close every connection managed by this pool."""
        for path in list(self._connections):
            await self.close_path(path)
