"""Full-text search over message content (SQLite FTS5)."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog

from ccrecall.models.records import SearchResult
from ccrecall.store.errors import SearchQueryError

if TYPE_CHECKING:
    from ccrecall.store.database import RecallStore

SNIPPET_OPEN = ">>>"
SNIPPET_CLOSE = "<<<"
SNIPPET_ELLIPSIS = "..."
SNIPPET_TOKENS = 32

_OPERATORS = frozenset({"AND", "OR", "NOT"})
_BAREWORD = re.compile(r"\w+", re.UNICODE)
_PHRASE = re.compile(r'"[^"]*"\*?')
# A quoted phrase (optionally followed by *), or a run of non-space characters.
_TOKEN = re.compile(r'"[^"]*"\*?|\S+')


def _quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def escape_query(query: str) -> str:
    """
    Rewrite a user query so the FTS5 parser accepts it.

    Quoted phrases, ``AND``/``OR``/``NOT`` and plain words (optionally with a
    trailing ``*`` prefix marker) pass through unchanged. Any other token,
    such as ``Downloads/transcripts``, ``meeting-notes.txt`` or ``don't``, is
    wrapped in double quotes so the tokenizer treats it as a phrase instead of
    query syntax. A trailing ``*`` stays outside the quotes and keeps its
    prefix meaning.

    Examples::

        escape_query('auth*')                 -> 'auth*'
        escape_query('"authentication bug"')  -> '"authentication bug"'
        escape_query('meeting-notes.txt')     -> '"meeting-notes.txt"'
        escape_query('Downloads/*')           -> '"Downloads/"*'
    """
    parts: list[str] = []
    for token in _TOKEN.findall(query):
        if _PHRASE.fullmatch(token) or token in _OPERATORS:
            parts.append(token)
            continue
        prefix = token.endswith("*") and len(token) > 1
        base = token[:-1] if prefix else token
        if _BAREWORD.fullmatch(base):
            parts.append(token)
        else:
            parts.append(_quote(base) + ("*" if prefix else ""))
    return " ".join(parts)


def like_pattern(fragment: str) -> str:
    escaped = fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SearchIndex:
    """
    Query and maintenance interface for the ``messages_fts`` table.

    The index is derived data: triggers keep it in step with ``messages`` and
    ``rebuild()`` re-derives it wholesale, so it never needs to be backed up.
    """

    def __init__(self, store: RecallStore) -> None:
        self._store = store
        self._logger = structlog.get_logger("ccrecall.store.search")

    async def search(
        self,
        query: str,
        *,
        project: str | None = None,
        limit: int = 20,
    ) -> list[SearchResult]:
        """
        Find messages whose text matches *query*, best match first.

        Args:
            query: Words, ``"quoted phrases"``, ``AND``/``OR``/``NOT`` and
                ``prefix*`` terms. Path-like tokens are matched literally.
            project: Keep only sessions whose project path contains this string.
            limit: Maximum number of results.

        Raises:
            SearchQueryError: If the query is empty or the FTS engine rejects it.
        """
        match = escape_query(query)
        if not match:
            raise SearchQueryError(query, "empty query")

        conditions = ["messages_fts MATCH ?"]
        params: list[Any] = [match]
        if project:
            conditions.append("s.project_path LIKE ? ESCAPE '\\'")
            params.append(like_pattern(project))
        params.append(limit)

        conn = self._store._conn_or_raise()
        sql = f"""
            SELECT m.uuid, m.session_id, m.type, m.timestamp, m.content_text,
                   s.project_path,
                   snippet(messages_fts, 0, '{SNIPPET_OPEN}', '{SNIPPET_CLOSE}',
                           '{SNIPPET_ELLIPSIS}', {SNIPPET_TOKENS}) AS snippet,
                   bm25(messages_fts) AS score
            FROM messages_fts
            JOIN messages m ON m.rowid = messages_fts.rowid
            JOIN sessions s ON s.id = m.session_id
            WHERE {' AND '.join(conditions)}
            ORDER BY score
            LIMIT ?
        """
        try:
            async with conn.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.OperationalError as exc:
            self._logger.info("search_query_rejected", query=query, match=match, error=str(exc))
            raise SearchQueryError(query, str(exc)) from exc

        return [
            SearchResult(
                uuid=row["uuid"],
                session_id=row["session_id"],
                type=row["type"],
                timestamp=row["timestamp"],
                content_text=row["content_text"],
                project_path=row["project_path"],
                snippet=row["snippet"] or "",
                rank=row["score"],
            )
            for row in rows
        ]

    async def rebuild(self) -> None:
        """Re-derive the whole index from the ``messages`` table."""
        async with self._store.transaction() as conn:
            await conn.execute("INSERT INTO messages_fts(messages_fts) VALUES ('rebuild')")
        self._logger.info("search_index_rebuilt")
