"""Per-file sync cursors: how much of each transcript has been ingested."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from ccrecall.store.database import RecallStore


@dataclass(frozen=True)
class SyncCursor:
    """
    Ingestion progress for one transcript file.

    ``last_byte_offset`` always sits on a line boundary: every byte before it
    has been consumed, and nothing after it has produced entities.
    """

    file_path: str
    last_modified: int
    """File modification time in Unix milliseconds when the cursor was written."""
    last_byte_offset: int


class CursorStore:
    """
    Cursor persistence over the ``sync_state`` table of a ``RecallStore``.

    ``set()`` does not commit: the sync engine writes the cursor inside the
    same transaction as the entities read from the file, so both become
    visible together or not at all.
    """

    def __init__(self, store: RecallStore) -> None:
        self._store = store
        self._logger = structlog.get_logger("ccrecall.store.cursor")

    async def get(self, file_path: str) -> SyncCursor | None:
        """Return the cursor for *file_path*, or ``None`` if it was never synced."""
        conn = self._store._conn_or_raise()
        async with conn.execute(
            "SELECT file_path, last_modified, last_byte_offset FROM sync_state"
            " WHERE file_path = ?",
            (file_path,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return SyncCursor(
            file_path=row["file_path"],
            last_modified=row["last_modified"],
            last_byte_offset=row["last_byte_offset"],
        )

    async def set(self, file_path: str, last_modified: int, last_byte_offset: int) -> None:
        """Insert or overwrite the cursor for *file_path* (uncommitted)."""
        conn = self._store._conn_or_raise()
        await conn.execute(
            """
            INSERT INTO sync_state (file_path, last_modified, last_byte_offset)
            VALUES (?, ?, ?)
            ON CONFLICT(file_path) DO UPDATE SET
                last_modified = excluded.last_modified,
                last_byte_offset = excluded.last_byte_offset
            """,
            (file_path, last_modified, last_byte_offset),
        )

    async def reset(self) -> int:
        """
        Delete every cursor so the next run rescans all files from byte zero.

        Returns:
            Number of cursors removed.
        """
        async with self._store.transaction() as conn:
            result = await conn.execute("DELETE FROM sync_state")
        self._logger.info("cursors_reset", removed=result.rowcount)
        return result.rowcount
