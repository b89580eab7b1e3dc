"""ccrecall persistence layer."""

from ccrecall.store.cursor import CursorStore, SyncCursor
from ccrecall.store.database import RecallStore, Session, StoredMessage
from ccrecall.store.errors import (
    MessageNotFoundError,
    QueryError,
    RecallStoreError,
    SearchQueryError,
    SessionNotFoundError,
    StoreNotInitializedError,
    TableNotFoundError,
)
from ccrecall.store.pool import StorePool
from ccrecall.store.search import SearchIndex, escape_query

__all__ = [
    "CursorStore",
    "MessageNotFoundError",
    "QueryError",
    "RecallStore",
    "RecallStoreError",
    "SearchIndex",
    "SearchQueryError",
    "Session",
    "SessionNotFoundError",
    "StoreNotInitializedError",
    "StorePool",
    "StoredMessage",
    "SyncCursor",
    "TableNotFoundError",
    "escape_query",
]
