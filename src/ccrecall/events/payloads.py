"""Typed payload definitions for each SyncEvent.

Usage example::

    from ccrecall.events.bus import EventBus, SyncEvent
    from ccrecall.events.payloads import FileSyncedPayload

    def on_file(event: SyncEvent, payload: FileSyncedPayload) -> None:
        print(f"{payload['file_path']}: +{payload['messages_added']}")

    bus.subscribe(SyncEvent.FILE_SYNCED, on_file)  # type: ignore[arg-type]
"""

from __future__ import annotations

from typing import TypedDict


class SyncStartedPayload(TypedDict):
    """Payload for :attr:`SyncEvent.SYNC_STARTED`."""

    root: str
    """The projects directory being scanned."""
    files: int
    """Number of transcript files in the discovery snapshot."""


class FileSyncedPayload(TypedDict):
    """Payload for :attr:`SyncEvent.FILE_SYNCED`. Not published for skipped files."""

    file_path: str
    messages_added: int
    byte_offset: int
    """Cursor offset committed for the file."""


class SyncProgressPayload(TypedDict):
    """Payload for :attr:`SyncEvent.SYNC_PROGRESS`."""

    files_done: int
    files_total: int
    messages_added: int
    """Messages added so far in this run."""


class SyncCompletedPayload(TypedDict):
    """Payload for :attr:`SyncEvent.SYNC_COMPLETED`: a dumped ``SyncResult``."""

    files_scanned: int
    files_skipped: int
    files_processed: int
    messages_added: int
    sessions_added: int
    tool_calls_added: int
    tool_results_added: int
    lines_rejected: int


class TeamSyncCompletedPayload(TypedDict):
    """Payload for :attr:`SyncEvent.TEAM_SYNC_COMPLETED`."""

    teams_synced: int
    members_synced: int
    tasks_synced: int
