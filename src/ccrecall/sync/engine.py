"""Incremental, resumable ingestion of transcript files into the store.

Each run walks a fixed snapshot of the transcript files and, for every file
whose modification time moved past its cursor, reads only the complete lines
appended since the cursor's byte offset. Everything read from one file is
written in a single transaction together with the advanced cursor, so a crash
mid-file leaves that file exactly as it was before the run.

Re-reading bytes is always safe: messages and tool calls are keyed by their
producer ids and inserted only when absent, and tool results are only written
alongside a newly inserted message.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from ccrecall.events.bus import EventBus, SyncEvent
from ccrecall.models.config import SyncConfig
from ccrecall.models.records import SyncResult
from ccrecall.models.transcript import ParsedMessage
from ccrecall.store.database import RecallStore
from ccrecall.transcripts.parser import iter_new_lines, parse_line


def derive_project_path(path: Path, root: Path) -> str:
    """
    Map a transcript location to the project it belongs to.

    The first path segment below *root* names the project. The producer
    encodes absolute directories by replacing ``/`` with ``-``, so a segment
    with a leading ``-`` is decoded back (``-home-user-myproj`` becomes
    ``/home/user/myproj``). Any other segment is returned verbatim.
    """
    segment = path.relative_to(root).parts[0]
    if segment.startswith("-"):
        return "/" + segment[1:].replace("-", "/")
    return segment


@dataclass
class _FileCounts:
    messages: int = 0
    sessions: int = 0
    tool_calls: int = 0
    tool_results: int = 0
    rejected: int = 0


class SyncEngine:
    """
    Drives one ingestion pass over the projects directory.

    Files are processed one at a time in sorted order. A storage error rolls
    back the current file, is logged as ``sync_file_failed`` and re-raised;
    files committed earlier in the run keep their cursors, so the next run
    resumes where this one stopped.

    Example::

        async with RecallStore(StoreConfig()) as store:
            result = await SyncEngine(store, SyncConfig()).run()
            print(result.messages_added)
    """

    def __init__(
        self,
        store: RecallStore,
        config: SyncConfig | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._config = config or SyncConfig()
        self._event_bus = event_bus or EventBus()
        self._root = Path(self._config.projects_dir)
        self._logger = structlog.get_logger("ccrecall.sync")

    @property
    def root(self) -> Path:
        return self._root

    def discover(self) -> list[Path]:
        """Return the sorted snapshot of transcript files. Missing root -> ``[]``."""
        if not self._root.is_dir():
            return []
        return sorted(p for p in self._root.glob(self._config.pattern) if p.is_file())

    async def run(self) -> SyncResult:
        """
        Ingest every new complete line from every stale transcript file.

        Returns:
            Counters of rows that did not exist before this run.

        Raises:
            RecallStoreError: If persisting a file fails; earlier files stay committed.
            aiosqlite.Error: On storage I/O failure, with the same guarantee.
        """
        started = time.monotonic()
        files = self.discover()
        result = SyncResult(files_scanned=len(files))
        seen_sessions: set[str] = set()

        self._logger.info("sync_started", root=str(self._root), files=len(files))
        self._event_bus.publish(
            SyncEvent.SYNC_STARTED, {"root": str(self._root), "files": len(files)}
        )

        for index, path in enumerate(files, start=1):
            await self._sync_file(path, seen_sessions, result)
            if index % self._config.progress_interval == 0:
                self._event_bus.publish(
                    SyncEvent.SYNC_PROGRESS,
                    {
                        "files_done": index,
                        "files_total": len(files),
                        "messages_added": result.messages_added,
                    },
                )

        self._logger.info(
            "sync_completed",
            duration_ms=int((time.monotonic() - started) * 1000),
            **result.model_dump(),
        )
        self._event_bus.publish(SyncEvent.SYNC_COMPLETED, result.model_dump())
        return result

    async def reset(self) -> int:
        """Forget every cursor so the next run rescans all files from byte zero."""
        return await self._store.cursors.reset()

    # ── Per-file Scan ──────────────────────────────────────────────────────────

    async def _sync_file(self, path: Path, seen_sessions: set[str], result: SyncResult) -> None:
        file_key = str(path)
        try:
            stat = path.stat()
        except FileNotFoundError:
            # Removed between discovery and scan.
            self._logger.warning("sync_file_vanished", file_path=file_key)
            result.files_skipped += 1
            return
        mtime = stat.st_mtime_ns // 1_000_000
        size = stat.st_size

        cursor = await self._store.cursors.get(file_key)
        if cursor is not None and cursor.last_modified >= mtime:
            result.files_skipped += 1
            return

        offset = cursor.last_byte_offset if cursor is not None else 0
        if size < offset:
            self._logger.warning(
                "sync_file_truncated", file_path=file_key, size=size, stored_offset=offset
            )
            offset = 0

        project_path = derive_project_path(path, self._root)
        counts = _FileCounts()
        # Sessions first seen in this file; only merged into the run's set on commit.
        new_sightings: set[str] = set()

        try:
            async with self._store.transaction():
                for end_offset, text in iter_new_lines(path, offset, size):
                    offset = end_offset
                    message = parse_line(text) if text is not None else None
                    if message is None:
                        counts.rejected += 1
                        self._logger.debug(
                            "sync_line_rejected", file_path=file_key, end_offset=end_offset
                        )
                        continue
                    await self._ingest(message, project_path, seen_sessions, new_sightings, counts)
                await self._store.cursors.set(file_key, mtime, offset)
        except Exception as exc:
            self._logger.error("sync_file_failed", file_path=file_key, error=str(exc))
            raise

        seen_sessions.update(new_sightings)
        result.messages_added += counts.messages
        result.sessions_added += counts.sessions
        result.tool_calls_added += counts.tool_calls
        result.tool_results_added += counts.tool_results
        result.lines_rejected += counts.rejected
        if counts.messages > 0:
            result.files_processed += 1

        self._logger.debug(
            "sync_file_scanned",
            file_path=file_key,
            project_path=project_path,
            byte_offset=offset,
            messages_added=counts.messages,
            lines_rejected=counts.rejected,
        )
        self._event_bus.publish(
            SyncEvent.FILE_SYNCED,
            {"file_path": file_key, "messages_added": counts.messages, "byte_offset": offset},
        )

    async def _ingest(
        self,
        message: ParsedMessage,
        project_path: str,
        seen_sessions: set[str],
        new_sightings: set[str],
        counts: _FileCounts,
    ) -> None:
        session_id = message.session_id
        if session_id not in seen_sessions and session_id not in new_sightings:
            new_sightings.add(session_id)
            if not await self._store.session_exists(session_id):
                counts.sessions += 1

        await self._store.upsert_session(
            session_id,
            project_path=project_path,
            timestamp=message.timestamp,
            git_branch=message.git_branch,
            cwd=message.cwd,
            summary=message.summary if message.is_summary else None,
        )

        if not await self._store.insert_message(message):
            return
        counts.messages += 1

        for call in message.tool_calls:
            if await self._store.insert_tool_call(
                call,
                message_uuid=message.uuid,
                session_id=session_id,
                timestamp=message.timestamp,
            ):
                counts.tool_calls += 1
        for tool_result in message.tool_results:
            await self._store.insert_tool_result(
                tool_result,
                message_uuid=message.uuid,
                session_id=session_id,
                timestamp=message.timestamp,
            )
            counts.tool_results += 1
