"""Store exception hierarchy."""

from __future__ import annotations


class RecallStoreError(Exception):
    """Base class for store errors."""


class StoreNotInitializedError(RecallStoreError):
    """Raised when the store is used before ``initialize()`` or after ``close()``."""

    def __init__(self) -> None:
        super().__init__("Store is not initialized. Call initialize() first.")


class SessionNotFoundError(RecallStoreError):
    """Raised when a session_id does not exist in the store."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id!r}")
        self.session_id = session_id


class MessageNotFoundError(RecallStoreError):
    """Raised when a message uuid does not exist in the store."""

    def __init__(self, uuid: str) -> None:
        super().__init__(f"Message not found: {uuid!r}")
        self.uuid = uuid


class TableNotFoundError(RecallStoreError):
    """Raised when schema introspection is asked about an unknown table."""

    def __init__(self, table: str) -> None:
        super().__init__(f"Table not found: {table!r}")
        self.table = table


class SearchQueryError(RecallStoreError):
    """Raised when a full-text query is empty or rejected by the FTS engine."""

    def __init__(self, query: str, reason: str) -> None:
        super().__init__(f"Invalid search query {query!r}: {reason}")
        self.query = query
        self.reason = reason


class QueryError(RecallStoreError):
    """Raised when an ad-hoc query fails or attempts to write."""
