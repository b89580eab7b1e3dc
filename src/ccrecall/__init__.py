"""
ccrecall: incremental SQLite archive and full-text search for agent transcripts.

Primary entry point::

    from ccrecall import RecallStore, StoreConfig, SyncEngine, SyncConfig

    async with RecallStore(StoreConfig()) as store:
        result = await SyncEngine(store, SyncConfig()).run()
        hits = await store.search("authentication")
"""

from ccrecall.events.bus import EventBus, SyncEvent
from ccrecall.models import (
    ParsedMessage,
    RecallConfig,
    SearchResult,
    SessionSummary,
    StoreConfig,
    StoreStats,
    SyncConfig,
    SyncResult,
    TeamsConfig,
    TeamSyncResult,
    ToolStat,
)
from ccrecall.store import RecallStore, RecallStoreError, StorePool
from ccrecall.sync import SyncEngine, TeamSync
from ccrecall.transcripts import parse_line

__version__ = "0.1.0"

__all__ = [
    # Engines
    "SyncEngine",
    "TeamSync",
    # Storage
    "RecallStore",
    "RecallStoreError",
    "StorePool",
    # Config
    "RecallConfig",
    "StoreConfig",
    "SyncConfig",
    "TeamsConfig",
    # Models
    "ParsedMessage",
    "SearchResult",
    "SessionSummary",
    "StoreStats",
    "SyncResult",
    "TeamSyncResult",
    "ToolStat",
    # Events
    "EventBus",
    "SyncEvent",
    # Parsing
    "parse_line",
]
