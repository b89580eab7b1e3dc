"""ccrecall event bus."""

from ccrecall.events.bus import EventBus, Handler, SyncEvent
from ccrecall.events.payloads import (
    FileSyncedPayload,
    SyncCompletedPayload,
    SyncProgressPayload,
    SyncStartedPayload,
    TeamSyncCompletedPayload,
)

__all__ = [
    "EventBus",
    "FileSyncedPayload",
    "Handler",
    "SyncCompletedPayload",
    "SyncEvent",
    "SyncProgressPayload",
    "SyncStartedPayload",
    "TeamSyncCompletedPayload",
]
