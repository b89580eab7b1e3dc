"""SQLite-backed entity store for sessions, messages, tool activity and teams."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog

from ccrecall.models.config import LEGACY_DB_PATH, StoreConfig
from ccrecall.models.records import (
    ColumnInfo,
    ForeignKeyInfo,
    IndexInfo,
    QueryResult,
    SearchResult,
    SessionSummary,
    StoreStats,
    TableInfo,
    Team,
    TeamMember,
    TeamTask,
    TokenTotals,
    ToolStat,
)
from ccrecall.models.transcript import ParsedMessage, ToolCall, ToolResult
from ccrecall.store.cursor import CursorStore
from ccrecall.store.errors import (
    MessageNotFoundError,
    QueryError,
    SessionNotFoundError,
    StoreNotInitializedError,
    TableNotFoundError,
)
from ccrecall.store.pool import open_connection
from ccrecall.store.search import SearchIndex, like_pattern

if TYPE_CHECKING:
    from ccrecall.store.pool import StorePool

# Tables hidden from schema introspection: the FTS table and its shadow tables.
_HIDDEN_TABLE_PREFIX = "messages_fts"


# ── Row Models ─────────────────────────────────────────────────────────────────


class Session:
    """Thin data class for session rows (not Pydantic: no validation on reads)."""

    __slots__ = (
        "cwd",
        "first_timestamp",
        "git_branch",
        "id",
        "last_timestamp",
        "project_path",
        "summary",
    )

    def __init__(
        self,
        id: str,
        project_path: str,
        git_branch: str | None,
        cwd: str | None,
        first_timestamp: int | None,
        last_timestamp: int | None,
        summary: str | None,
    ) -> None:
        self.id = id
        self.project_path = project_path
        self.git_branch = git_branch
        self.cwd = cwd
        self.first_timestamp = first_timestamp
        self.last_timestamp = last_timestamp
        self.summary = summary


class StoredMessage:
    """A message row as persisted."""

    __slots__ = (
        "cache_creation_tokens",
        "cache_read_tokens",
        "content_json",
        "content_text",
        "input_tokens",
        "model",
        "output_tokens",
        "parent_uuid",
        "session_id",
        "thinking",
        "timestamp",
        "type",
        "uuid",
    )

    def __init__(self, row: aiosqlite.Row) -> None:
        for name in self.__slots__:
            setattr(self, name, row[name])


# ── RecallStore ────────────────────────────────────────────────────────────────


class RecallStore:
    """
    Durable relational storage of transcript entities.

    Messages, tool calls and tool results are immutable facts: inserting an
    identifier that already exists is a silent no-op. Sessions, teams and team
    tasks are merged field by field (timestamps widen, text fields are only
    replaced by a present value).

    Write methods do **not** commit. Group them with :meth:`transaction`, which
    commits on success and rolls back on any exception::

        async with RecallStore(StoreConfig()) as store:
            async with store.transaction():
                await store.upsert_session("s1", project_path="/p", timestamp=ts)
                await store.insert_message(parsed)

    When a ``StorePool`` is supplied the connection is borrowed from it and
    ``close()`` leaves it open; otherwise the store owns a private connection.
    """

    def __init__(self, config: StoreConfig, pool: StorePool | None = None) -> None:
        self._config = config
        self._db_path = config.db_path
        self._pool = pool
        self._conn: aiosqlite.Connection | None = None
        self._private_lock = asyncio.Lock()
        self._logger = structlog.get_logger("ccrecall.store")
        self.cursors = CursorStore(self)
        self.search_index = SearchIndex(self)

    @property
    def db_path(self) -> str:
        return self._db_path

    async def initialize(self) -> None:
        """
        Open (or borrow) a database connection and apply the schema.

        Raises:
            aiosqlite.Error: If the database cannot be opened or the schema fails.
        """
        self._migrate_legacy_db()
        if self._pool is not None:
            conn = await self._pool.acquire(
                self._db_path,
                wal_mode=self._config.wal_mode,
                connection_timeout=self._config.connection_timeout,
            )
        else:
            conn = await open_connection(
                self._db_path,
                wal_mode=self._config.wal_mode,
                connection_timeout=self._config.connection_timeout,
            )

        schema = (Path(__file__).parent / "schema.sql").read_text()
        await conn.executescript(schema)
        await conn.commit()

        self._conn = conn
        self._logger.info("store_initialized", db_path=self._db_path)

    async def close(self) -> None:
        """Release the connection; pooled connections stay open for the pool to close."""
        if self._conn is None:
            return
        if self._pool is None:
            await self._conn.close()
        self._conn = None

    async def __aenter__(self) -> RecallStore:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _conn_or_raise(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreNotInitializedError()
        return self._conn

    def _migrate_legacy_db(self) -> None:
        if not (self._config.migrate_legacy and self._config.is_default_path):
            return
        target = Path(self._db_path)
        legacy = Path(LEGACY_DB_PATH).expanduser()
        if target.exists() or not legacy.exists():
            return
        legacy.rename(target)
        self._logger.info("legacy_db_migrated", source=str(legacy), target=str(target))

    def _write_lock(self) -> asyncio.Lock:
        if self._pool is not None:
            return self._pool.write_lock(self._db_path)
        return self._private_lock

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Run the enclosed writes as one atomic unit.

        Commits when the block exits normally; rolls back and re-raises on any
        exception, leaving no partial effects visible.
        """
        conn = self._conn_or_raise()
        async with self._write_lock():
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            await conn.commit()

    # ── Session Methods ────────────────────────────────────────────────────────

    async def upsert_session(
        self,
        id: str,
        *,
        project_path: str,
        timestamp: int,
        git_branch: str | None = None,
        cwd: str | None = None,
        summary: str | None = None,
    ) -> None:
        """
        Insert a session or merge *timestamp* and the optional fields into it.

        ``first_timestamp`` only moves earlier and ``last_timestamp`` only moves
        later. ``git_branch``, ``cwd`` and ``summary`` are replaced only by a
        value that is not ``None``; ``project_path`` is fixed at creation.
        """
        conn = self._conn_or_raise()
        await conn.execute(
            """
            INSERT INTO sessions
                (id, project_path, git_branch, cwd, first_timestamp, last_timestamp, summary)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                first_timestamp = MIN(
                    COALESCE(first_timestamp, excluded.first_timestamp),
                    excluded.first_timestamp
                ),
                last_timestamp = MAX(
                    COALESCE(last_timestamp, excluded.last_timestamp),
                    excluded.last_timestamp
                ),
                git_branch = COALESCE(excluded.git_branch, git_branch),
                cwd = COALESCE(excluded.cwd, cwd),
                summary = COALESCE(excluded.summary, summary)
            """,
            (id, project_path, git_branch, cwd, timestamp, timestamp, summary),
        )

    async def session_exists(self, session_id: str) -> bool:
        conn = self._conn_or_raise()
        async with conn.execute("SELECT 1 FROM sessions WHERE id = ?", (session_id,)) as cursor:
            return await cursor.fetchone() is not None

    async def get_session(self, session_id: str) -> Session:
        """
        Fetch a session by ID.

        Raises:
            SessionNotFoundError: If no session with this ID exists.
        """
        conn = self._conn_or_raise()
        async with conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise SessionNotFoundError(session_id)
        return Session(
            id=row["id"],
            project_path=row["project_path"],
            git_branch=row["git_branch"],
            cwd=row["cwd"],
            first_timestamp=row["first_timestamp"],
            last_timestamp=row["last_timestamp"],
            summary=row["summary"],
        )

    # ── Message Methods ────────────────────────────────────────────────────────

    async def insert_message(self, message: ParsedMessage) -> bool:
        """
        Insert a message unless its uuid is already stored.

        The owning session must already exist (upsert it first).

        Returns:
            ``True`` if a row was written, ``False`` for a duplicate uuid.

        Raises:
            SessionNotFoundError: If ``message.session_id`` does not exist.
        """
        conn = self._conn_or_raise()
        tokens = message.tokens
        try:
            result = await conn.execute(
                """
                INSERT OR IGNORE INTO messages (
                    uuid, session_id, parent_uuid, type, model,
                    content_text, content_json, thinking, timestamp,
                    input_tokens, output_tokens, cache_read_tokens, cache_creation_tokens
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message.uuid,
                    message.session_id,
                    message.parent_uuid,
                    message.type,
                    message.model,
                    message.content_text,
                    message.content_json,
                    message.thinking,
                    message.timestamp,
                    tokens.input,
                    tokens.output,
                    tokens.cache_read,
                    tokens.cache_creation,
                ),
            )
        except aiosqlite.IntegrityError as exc:
            raise SessionNotFoundError(message.session_id) from exc
        return result.rowcount == 1

    async def get_message(self, uuid: str) -> StoredMessage:
        """
        Fetch a single message by uuid.

        Raises:
            MessageNotFoundError: If no message with this uuid exists.
        """
        conn = self._conn_or_raise()
        async with conn.execute("SELECT * FROM messages WHERE uuid = ?", (uuid,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise MessageNotFoundError(uuid)
        return StoredMessage(row)

    async def insert_tool_call(
        self,
        call: ToolCall,
        *,
        message_uuid: str,
        session_id: str,
        timestamp: int,
    ) -> bool:
        """Insert a tool call unless its id is already stored. Returns ``True`` if written."""
        conn = self._conn_or_raise()
        try:
            result = await conn.execute(
                """
                INSERT OR IGNORE INTO tool_calls
                    (id, message_uuid, session_id, tool_name, tool_input, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (call.id, message_uuid, session_id, call.tool_name, call.tool_input, timestamp),
            )
        except aiosqlite.IntegrityError as exc:
            raise MessageNotFoundError(message_uuid) from exc
        return result.rowcount == 1

    async def insert_tool_result(
        self,
        tool_result: ToolResult,
        *,
        message_uuid: str,
        session_id: str,
        timestamp: int,
    ) -> int:
        """
        Append a tool result row.

        Results have a surrogate key, so every call writes a new row. The sync
        engine only calls this when the owning message was newly inserted.

        Returns:
            The surrogate id of the new row.
        """
        conn = self._conn_or_raise()
        try:
            result = await conn.execute(
                """
                INSERT INTO tool_results
                    (tool_call_id, message_uuid, session_id, content, is_error, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    tool_result.tool_call_id,
                    message_uuid,
                    session_id,
                    tool_result.content,
                    int(tool_result.is_error),
                    timestamp,
                ),
            )
        except aiosqlite.IntegrityError as exc:
            raise MessageNotFoundError(message_uuid) from exc
        return result.lastrowid

    # ── Team Methods ───────────────────────────────────────────────────────────

    async def upsert_team(self, team: Team) -> None:
        """Insert a team or fill its description and lead session when present."""
        conn = self._conn_or_raise()
        await conn.execute(
            """
            INSERT INTO teams (id, name, description, lead_session_id, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                description = COALESCE(excluded.description, description),
                lead_session_id = COALESCE(excluded.lead_session_id, lead_session_id)
            """,
            (team.id, team.name, team.description, team.lead_session_id, team.created_at),
        )

    async def upsert_team_member(self, member: TeamMember) -> None:
        """Insert a team member or fill its prompt and model when present."""
        conn = self._conn_or_raise()
        await conn.execute(
            """
            INSERT INTO team_members
                (id, team_id, name, agent_type, model, prompt, color, cwd, joined_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                prompt = COALESCE(excluded.prompt, prompt),
                model = COALESCE(excluded.model, model)
            """,
            (
                member.id,
                member.team_id,
                member.name,
                member.agent_type,
                member.model,
                member.prompt,
                member.color,
                member.cwd,
                member.joined_at,
            ),
        )

    async def upsert_team_task(self, task: TeamTask) -> None:
        """Insert a task or merge it: status always follows the latest file."""
        conn = self._conn_or_raise()
        await conn.execute(
            """
            INSERT INTO team_tasks
                (id, team_id, owner_name, subject, description, status, created_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                owner_name = COALESCE(excluded.owner_name, owner_name),
                completed_at = COALESCE(excluded.completed_at, completed_at)
            """,
            (
                task.id,
                task.team_id,
                task.owner_name,
                task.subject,
                task.description,
                task.status,
                task.created_at,
                task.completed_at,
            ),
        )

    # ── Search ─────────────────────────────────────────────────────────────────

    async def search(
        self,
        query: str,
        *,
        project: str | None = None,
        limit: int = 20,
    ) -> list[SearchResult]:
        """Full-text search over message content. See :meth:`SearchIndex.search`."""
        return await self.search_index.search(query, project=project, limit=limit)

    async def rebuild_index(self) -> None:
        """Re-derive the full-text index from the messages table."""
        await self.search_index.rebuild()

    # ── Query Methods ──────────────────────────────────────────────────────────

    async def get_stats(self) -> StoreStats:
        """Return row counts for every entity table and token sums over all messages."""
        conn = self._conn_or_raise()
        async with conn.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM sessions) AS sessions,
                (SELECT COUNT(*) FROM messages) AS messages,
                (SELECT COUNT(*) FROM tool_calls) AS tool_calls,
                (SELECT COUNT(*) FROM tool_results) AS tool_results,
                (SELECT COUNT(*) FROM teams) AS teams,
                (SELECT COUNT(*) FROM team_members) AS team_members,
                (SELECT COUNT(*) FROM team_tasks) AS team_tasks
            """
        ) as cursor:
            counts = await cursor.fetchone()
        async with conn.execute(
            """
            SELECT
                COALESCE(SUM(input_tokens), 0) AS input,
                COALESCE(SUM(output_tokens), 0) AS output,
                COALESCE(SUM(cache_read_tokens), 0) AS cache_read,
                COALESCE(SUM(cache_creation_tokens), 0) AS cache_creation
            FROM messages
            """
        ) as cursor:
            tokens = await cursor.fetchone()
        return StoreStats(
            **{key: counts[key] for key in counts.keys()},
            tokens=TokenTotals(**{key: tokens[key] for key in tokens.keys()}),
        )

    async def get_sessions(
        self,
        *,
        project: str | None = None,
        limit: int = 20,
    ) -> list[SessionSummary]:
        """
        List sessions, most recently active first.

        Args:
            project: Keep only sessions whose project path contains this string.
            limit: Maximum number of sessions to return.
        """
        conn = self._conn_or_raise()
        where = ""
        params: list[Any] = []
        if project:
            where = "WHERE s.project_path LIKE ? ESCAPE '\\'"
            params.append(like_pattern(project))
        params.append(limit)

        async with conn.execute(
            f"""
            SELECT s.id, s.project_path, s.git_branch, s.cwd,
                   s.first_timestamp, s.last_timestamp, s.summary,
                   COUNT(m.uuid) AS message_count,
                   COALESCE(SUM(m.input_tokens + m.output_tokens), 0) AS total_tokens
            FROM sessions s
            LEFT JOIN messages m ON m.session_id = s.id
            {where}
            GROUP BY s.id
            ORDER BY s.last_timestamp DESC
            LIMIT ?
            """,
            params,
        ) as cursor:
            rows = await cursor.fetchall()
        return [SessionSummary(**{key: row[key] for key in row.keys()}) for row in rows]

    async def get_tool_stats(
        self,
        *,
        project: str | None = None,
        limit: int | None = None,
    ) -> list[ToolStat]:
        """
        Count tool calls per tool name, most used first.

        Percentages are shares of all matching calls (not just the returned
        ones), so the full list sums to 100.

        Args:
            project: Keep only calls from sessions whose project path contains this.
            limit: Maximum number of tools to return; ``None`` for all.
        """
        conn = self._conn_or_raise()
        join = ""
        params: list[Any] = []
        if project:
            join = (
                "JOIN sessions s ON s.id = tc.session_id"
                " WHERE s.project_path LIKE ? ESCAPE '\\'"
            )
            params.append(like_pattern(project))
        params.append(-1 if limit is None else limit)

        async with conn.execute(
            f"""
            SELECT tc.tool_name AS tool_name,
                   COUNT(*) AS count,
                   ROUND(COUNT(*) * 100.0 / SUM(COUNT(*)) OVER (), 1) AS percentage
            FROM tool_calls tc
            {join}
            GROUP BY tc.tool_name
            ORDER BY count DESC, tool_name ASC
            LIMIT ?
            """,
            params,
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            ToolStat(tool_name=row["tool_name"], count=row["count"], percentage=row["percentage"])
            for row in rows
        ]

    async def get_schema(self, table: str | None = None) -> list[TableInfo]:
        """
        Describe the store's tables: row counts, columns, foreign keys, indexes.

        Args:
            table: Describe only this table.

        Raises:
            TableNotFoundError: If *table* is given but does not exist.
        """
        conn = self._conn_or_raise()
        async with conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
            " AND name NOT LIKE 'sqlite_%' AND name NOT LIKE ? ORDER BY name",
            (f"{_HIDDEN_TABLE_PREFIX}%",),
        ) as cursor:
            names = [row["name"] for row in await cursor.fetchall()]

        if table is not None:
            if table not in names:
                raise TableNotFoundError(table)
            names = [table]

        return [await self._describe_table(conn, name) for name in names]

    async def _describe_table(self, conn: aiosqlite.Connection, name: str) -> TableInfo:
        quoted = '"' + name.replace('"', '""') + '"'
        async with conn.execute(f"SELECT COUNT(*) FROM {quoted}") as cursor:
            row_count = (await cursor.fetchone())[0]
        async with conn.execute(f"PRAGMA table_info({quoted})") as cursor:
            columns = [
                ColumnInfo(
                    name=row["name"],
                    type=row["type"],
                    not_null=bool(row["notnull"]),
                    default=row["dflt_value"],
                    primary_key=bool(row["pk"]),
                )
                for row in await cursor.fetchall()
            ]
        async with conn.execute(f"PRAGMA foreign_key_list({quoted})") as cursor:
            foreign_keys = [
                ForeignKeyInfo(
                    column=row["from"],
                    references_table=row["table"],
                    references_column=row["to"],
                )
                for row in await cursor.fetchall()
            ]
        async with conn.execute(f"PRAGMA index_list({quoted})") as cursor:
            index_rows = await cursor.fetchall()
        indexes: list[IndexInfo] = []
        for row in index_rows:
            index_name = row["name"]
            async with conn.execute(
                "SELECT name FROM pragma_index_info(?) ORDER BY seqno", (index_name,)
            ) as cursor:
                index_columns = [r["name"] for r in await cursor.fetchall()]
            indexes.append(
                IndexInfo(name=index_name, unique=bool(row["unique"]), columns=index_columns)
            )
        return TableInfo(
            name=name,
            row_count=row_count,
            columns=columns,
            foreign_keys=foreign_keys,
            indexes=indexes,
        )

    async def query(
        self,
        sql: str,
        params: Sequence[Any] = (),
        *,
        limit: int | None = None,
    ) -> QueryResult:
        """
        Run one read-only SQL statement and return its rows.

        The connection is switched to ``query_only`` for the duration, so any
        attempt to modify the database fails.

        Args:
            sql: A single SQL statement.
            params: Positional parameters for ``?`` placeholders.
            limit: Fetch at most this many rows.

        Raises:
            QueryError: If the statement is invalid or tries to write.
        """
        conn = self._conn_or_raise()
        await conn.execute("PRAGMA query_only = ON")
        try:
            async with conn.execute(sql, tuple(params)) as cursor:
                columns = [col[0] for col in cursor.description or ()]
                rows = await (cursor.fetchmany(limit) if limit is not None else cursor.fetchall())
        except aiosqlite.Error as exc:
            if conn.in_transaction:
                await conn.rollback()
            raise QueryError(str(exc)) from exc
        finally:
            await conn.execute("PRAGMA query_only = OFF")
        return QueryResult(columns=columns, rows=[list(row) for row in rows])
