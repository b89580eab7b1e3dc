"""Team entities and the result types returned by the store and sync engines."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# ── Team Entities ──────────────────────────────────────────────────────────────


class Team(BaseModel):
    """A named group of cooperating agent sessions."""

    id: str
    name: str
    description: str | None = None
    lead_session_id: str | None = None
    created_at: int
    """Unix millisecond timestamp."""


class TeamMember(BaseModel):
    """One agent participating in a team."""

    id: str
    team_id: str
    name: str
    agent_type: str | None = None
    model: str | None = None
    prompt: str | None = None
    color: str | None = None
    cwd: str | None = None
    joined_at: int


class TeamTask(BaseModel):
    """A unit of work on a team's shared task list."""

    id: str
    team_id: str
    owner_name: str | None = None
    subject: str
    description: str | None = None
    status: str = "pending"
    created_at: int | None = None
    completed_at: int | None = None


# ── Sync Results ───────────────────────────────────────────────────────────────


class SyncResult(BaseModel):
    """
    Aggregate counters for one ingestion run.

    Only rows that did not exist before the run are counted, so a second run
    over unchanged (or fully re-scanned) files reports zeros.
    """

    files_scanned: int = 0
    """Files discovered under the projects root."""
    files_skipped: int = 0
    """Files whose modification time had not advanced past their cursor."""
    files_processed: int = 0
    """Files that yielded at least one new message."""
    messages_added: int = 0
    sessions_added: int = 0
    tool_calls_added: int = 0
    tool_results_added: int = 0
    lines_rejected: int = 0
    """Complete lines consumed without producing a record."""


class TeamSyncResult(BaseModel):
    """Counters for one team ingestion pass."""

    teams_synced: int = 0
    members_synced: int = 0
    tasks_synced: int = 0


# ── Query Results ──────────────────────────────────────────────────────────────


class TokenTotals(BaseModel):
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_creation: int = 0


class StoreStats(BaseModel):
    """Row counts and token sums across the whole store."""

    sessions: int = 0
    messages: int = 0
    tool_calls: int = 0
    tool_results: int = 0
    teams: int = 0
    team_members: int = 0
    team_tasks: int = 0
    tokens: TokenTotals = Field(default_factory=TokenTotals)


class SessionSummary(BaseModel):
    """A session row with aggregates, as listed by ``get_sessions()``."""

    id: str
    project_path: str
    git_branch: str | None = None
    cwd: str | None = None
    first_timestamp: int | None = None
    last_timestamp: int | None = None
    summary: str | None = None
    message_count: int = 0
    total_tokens: int = 0
    """Input plus output tokens over the session's messages."""


class ToolStat(BaseModel):
    """Usage count of one tool and its share of all matching calls."""

    tool_name: str
    count: int
    percentage: float
    """Share of all matching tool calls, 0-100, rounded to one decimal."""


class SearchResult(BaseModel):
    """A message matched by full-text search."""

    uuid: str
    session_id: str
    type: str
    timestamp: int
    content_text: str | None
    project_path: str
    snippet: str
    """Excerpt with matched terms wrapped in ``>>>`` and ``<<<``."""
    rank: float
    """bm25 score; lower is more relevant."""


class ColumnInfo(BaseModel):
    name: str
    type: str
    not_null: bool
    default: str | None = None
    primary_key: bool


class ForeignKeyInfo(BaseModel):
    column: str
    references_table: str
    references_column: str | None


class IndexInfo(BaseModel):
    name: str
    unique: bool
    columns: list[str]


class TableInfo(BaseModel):
    """Schema description of one table for diagnostic tooling."""

    name: str
    row_count: int
    columns: list[ColumnInfo] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyInfo] = Field(default_factory=list)
    indexes: list[IndexInfo] = Field(default_factory=list)


class QueryResult(BaseModel):
    """Rows returned by an ad-hoc read-only query."""

    columns: list[str]
    rows: list[list[Any]]
